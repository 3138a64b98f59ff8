from fastapi import APIRouter, Depends

from companion_api.core.dependencies import get_settings
from companion_api.core.settings_service import TypedSettings
from companion_api.schemas.setting import MonetizationStatus

router = APIRouter()

@router.get("/monetization-status", response_model=MonetizationStatus)
async def read_monetization_status(settings: TypedSettings = Depends(get_settings)):
    return MonetizationStatus(monetization_enabled=settings.monetization_enabled)
