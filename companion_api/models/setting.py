from sqlalchemy import Column, String, Text, DateTime, func
from companion_api.db.base_class import Base

class AdminSetting(Base):
    __tablename__ = "admin_settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)  # Stored as text, parsed by the settings service
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<AdminSetting(key='{self.key}', value='{self.value}')>"
