from fastapi import APIRouter, Depends

from tripcost.core.config import Settings
from tripcost.core.deps import get_app_settings, get_db
from tripcost.db.dal import Database
from tripcost.db.migrate import CURRENT_SCHEMA_VERSION

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness and schema status")
def health(
    settings: Settings = Depends(get_app_settings),
    db: Database = Depends(get_db),
):
    version = db.schema_version()
    return {
        "status": "ok" if version == CURRENT_SCHEMA_VERSION else "degraded",
        "version": settings.version,
        "schema_version": version,
        "usage_refresh_mode": settings.usage_refresh_mode,
    }
