"""Utility modules."""

from app.utils.normalization import (
    normalize_email,
    normalize_indian_mobile,
    normalize_name,
    normalize_phone,
)
from app.utils.pagination import (
    PaginationParams,
    get_pagination,
    page_meta,
    paginate_query,
)

__all__ = [
    # Normalization
    "normalize_email",
    "normalize_indian_mobile",
    "normalize_name",
    "normalize_phone",
    # Pagination
    "PaginationParams",
    "get_pagination",
    "page_meta",
    "paginate_query",
]
