"""
Typed access to the key/value ``admin_settings`` table.

Values are stored as text. ``TypedSettings`` declares every known key with its
type and default, and stored strings are validated against it when loaded, so
callers get real booleans and Decimals instead of comparing against ``"false"``.
"""
import logging
from typing import Any, Dict

from pydantic import ValidationError
from sqlalchemy.orm import Session

from companion_api.crud import crud_setting
from companion_api.schemas.setting import TypedSettings

logger = logging.getLogger(__name__)


class SettingsValidationError(ValueError):
    pass


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )


def _serialize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_raw(raw: Dict[str, str]) -> TypedSettings:
    """Validate stored strings one key at a time. Bad values fall back to their default."""
    values = {}
    for key in TypedSettings.model_fields:
        if key not in raw:
            continue
        try:
            values[key] = getattr(TypedSettings.model_validate({key: raw[key]}), key)
        except ValidationError as e:
            logger.warning(f"Stored setting '{key}' is invalid ({_describe(e)}); using default")
    return TypedSettings(**values)


def validate_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Validate incoming values. Raises SettingsValidationError for unknown keys or bad values."""
    try:
        parsed = TypedSettings.model_validate(updates)
    except ValidationError as e:
        raise SettingsValidationError(f"Invalid settings: {_describe(e)}")
    return {key: getattr(parsed, key) for key in updates}


def load_settings(db: Session) -> TypedSettings:
    return parse_raw(crud_setting.get_raw_settings(db))


def save_settings(db: Session, updates: Dict[str, Any]) -> TypedSettings:
    parsed = validate_updates(updates)
    crud_setting.upsert_settings(db, values={key: _serialize(value) for key, value in parsed.items()})
    logger.info(f"Admin settings updated: {', '.join(sorted(parsed))}")
    return load_settings(db)


def is_monetization_enabled(db: Session) -> bool:
    return load_settings(db).monetization_enabled
