# storefront/api/routers/health.py
import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.api.deps import get_redis
from storefront.data.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db), client: redis.Redis = Depends(get_redis)):
    status = {"database": "ok", "redis": "ok"}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        status["database"] = f"error: {e}"
    try:
        client.ping()
    except redis.RedisError as e:
        status["redis"] = f"error: {e}"
    status["status"] = "ok" if status["database"] == status["redis"] == "ok" else "degraded"
    return status
