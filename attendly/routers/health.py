from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from attendly.config import settings
from attendly.database import get_db

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Simple check that the API server is up.
    """
    return {"status": "ok", "service": settings.PROJECT_NAME}


@router.get("/db", status_code=status.HTTP_200_OK)
async def db_health_check(db: AsyncSession = Depends(get_db)):
    """
    Deeper check that the database connection is active.
    """
    try:
        result = await db.execute(text("SELECT 1"))
        value = result.scalar_one()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database connection failed: {str(e)}",
        )
    if value != 1:
        raise HTTPException(status_code=500, detail="Database returned unexpected result")
    return {"status": "up", "database": "connected"}
