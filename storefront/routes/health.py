from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from storefront.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Liveness probe for the hosting platform.
    Touches the database so a dead connection pool shows up here first.
    """
    db.execute(text("SELECT 1"))
    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ping")
def ping():
    return {"ping": "pong"}
