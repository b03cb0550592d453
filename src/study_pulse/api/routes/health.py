from fastapi import APIRouter
from pydantic import BaseModel

from study_pulse.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    timezone: str
    sms_transport: str
    email_configured: bool


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    from study_pulse import __version__
    return HealthResponse(
        status="ok",
        version=__version__,
        timezone=settings.local_timezone,
        sms_transport=settings.sms_transport,
        email_configured=bool(settings.email_api_key),
    )
