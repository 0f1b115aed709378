"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    state = request.app.state
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": state.settings.app_version,
            "database": getattr(state, "db", None) is not None,
            "scheduler": bool(getattr(state, "scheduler", None) and state.scheduler.running),
        },
        "requestId": getattr(request.state, "request_id", ""),
    }
