"""System settings service - process-wide key/value switches."""

import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import SystemSetting

logger = logging.getLogger(__name__)

AUTO_ASSIGN_AGENTS_KEY = "auto_assign_agents"

SETTING_TYPES = {"string", "boolean", "number", "json"}


def get_setting(db: Session, key: str) -> SystemSetting | None:
    return db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()


def get_value(db: Session, key: str, default: str | None = None) -> str | None:
    row = get_setting(db, key)
    if row is None or row.setting_value is None:
        return default
    return row.setting_value


def set_value(
    db: Session,
    key: str,
    value: str,
    *,
    setting_type: str = "string",
    description: str | None = None,
    is_public: bool = False,
) -> SystemSetting:
    """Create or overwrite a setting. Commits."""
    if setting_type not in SETTING_TYPES:
        raise ValueError(f"Unknown setting type '{setting_type}'")

    row = get_setting(db, key)
    if row is None:
        row = SystemSetting(setting_key=key, setting_type=setting_type, is_public=is_public)
        db.add(row)
    row.setting_value = value
    row.setting_type = setting_type
    if description is not None:
        row.description = description
    db.commit()
    db.refresh(row)
    logger.info("System setting %s updated", key)
    return row


def auto_assign_enabled(db: Session) -> bool:
    """
    The global auto-assignment switch.

    Only the literal string ``true`` enables it. Falls back to
    AUTO_ASSIGN_AGENTS when no row exists.
    """
    value = get_value(db, AUTO_ASSIGN_AGENTS_KEY)
    if value is None:
        return settings.AUTO_ASSIGN_AGENTS
    return value.strip() == "true"
