"""Health check endpoint.

Reports the server version, database reachability, and how many
conversations currently have live subscribers in this process.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from murmur import __version__
from murmur.db.engine import get_db

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {
        "status": status,
        **checks,
        "live_topics": len(request.app.state.broadcaster.topics()),
    }
