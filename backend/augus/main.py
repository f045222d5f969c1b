import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_expired_resets
from .logging_setup import configure_logging
from .settings import settings
from .routers import health, auth, oauth, ai, session_ws

logger = logging.getLogger(__name__)

app = FastAPI(title="augus.ai API")
app.add_middleware(
	CORSMiddleware,
	allow_origin_regex=".*",
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(oauth.router)
app.include_router(ai.router)
app.include_router(session_ws.router)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
	logger.exception("unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"detail": str(exc) or "Server error"})


def _purge_once() -> None:
	db = next(get_db())
	try:
		removed = purge_expired_resets(db)
		if removed:
			logger.info("purged %d password reset tokens", removed)
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			_purge_once()
		except Exception:
			logger.exception("password reset cleanup failed")


@app.on_event("startup")
async def startup_event():
	configure_logging(settings.log_level)
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	try:
		_purge_once()
	except Exception:
		logger.exception("password reset cleanup failed")
	# Start periodic cleanup loop
	asyncio.create_task(_cleanup_watcher())
