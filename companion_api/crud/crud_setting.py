from sqlalchemy.orm import Session
from typing import Dict

from companion_api.models.setting import AdminSetting

def get_raw_settings(db: Session) -> Dict[str, str]:
    return {row.key: row.value for row in db.query(AdminSetting).all()}

def upsert_settings(db: Session, *, values: Dict[str, str]) -> None:
    """Write already-serialized values in one transaction."""
    for key, value in values.items():
        db_obj = db.query(AdminSetting).filter(AdminSetting.key == key).first()
        if db_obj:
            db_obj.value = value
        else:
            db_obj = AdminSetting(key=key, value=value)
        db.add(db_obj)
    db.commit()
