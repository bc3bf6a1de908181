from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from rentline.core.config import settings
from rentline.core.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "service": "rentline", "environment": settings.environment}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_db)):
    # Liveness of the billing store only; the worker has its own sync engine
    await db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "connected"}
