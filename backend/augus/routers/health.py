from fastapi import APIRouter

from ..settings import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
	return {"ok": True}


@router.get("/info")
def info():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"session_limit_seconds": settings.session_limit_seconds,
	}
