from fastapi import APIRouter, Depends

from app.config import get_settings
from app.core.dates import isoformat, utcnow
from app.dependencies import get_services
from app.services import LedgerServices

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(services: LedgerServices = Depends(get_services)):
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "storage": type(services.storage).__name__,
        "time": isoformat(utcnow()),
    }
