from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import ForbiddenError, ServerError
from ..core.permissions import Permission, require_permission
from ..core.seed import clear_all_data, reset_database
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def require_development():
    if not settings.is_development:
        raise ForbiddenError("Maintenance endpoints are only available in development")


@router.post("/reset", dependencies=[Depends(require_development)])
async def reset(db: AsyncSession = Depends(get_db),
                current_user: dict = Depends(require_permission(Permission.MAINTENANCE))):
    """Delete all data and load the demo school again"""
    try:
        logger.warning(f"Database reset requested by {current_user['user_id']}")
        await reset_database(db)
        return {"success": True, "message": "Database reset and demo data loaded"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error resetting database: {e}")
        await db.rollback()
        raise ServerError("Error resetting database", e)


@router.post("/clear", dependencies=[Depends(require_development)])
async def clear(db: AsyncSession = Depends(get_db),
                current_user: dict = Depends(require_permission(Permission.MAINTENANCE))):
    """Delete all data, keeping only the admin account"""
    try:
        logger.warning(f"Database clear requested by {current_user['user_id']}")
        await clear_all_data(db)
        return {"success": True, "message": "All data deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error clearing database: {e}")
        await db.rollback()
        raise ServerError("Error clearing database", e)
