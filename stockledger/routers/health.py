from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.config import get_settings
from stockledger.dependencies import get_db
from stockledger.services.analytics_service import ledger_size

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "ledger_entries": ledger_size(db),
        "time": datetime.now(timezone.utc).isoformat(),
    }
