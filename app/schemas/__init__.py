"""Pydantic schemas for API request/response models."""

from app.schemas.auth import MeResponse, UserSession
from app.schemas.enquiry import (
    EnquiryCreate,
    EnquiryCreateResponse,
    EnquiryDetail,
    EnquiryNoteCreate,
    EnquiryNoteRead,
    EnquiryRead,
    EnquiryTrack,
    EnquiryUpdate,
)

__all__ = [
    # Auth
    "UserSession",
    "MeResponse",
    # Enquiry
    "EnquiryCreate",
    "EnquiryCreateResponse",
    "EnquiryUpdate",
    "EnquiryRead",
    "EnquiryDetail",
    "EnquiryTrack",
    "EnquiryNoteCreate",
    "EnquiryNoteRead",
]
