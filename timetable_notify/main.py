from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from timetable_notify import __version__
from timetable_notify.api.routes import push
from timetable_notify.config import get_settings
from timetable_notify.core.lifespan import lifespan

settings = get_settings()

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

if settings.allowed_origins:
  app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"])


@app.get("/health", include_in_schema=False)
async def health_check(request: Request) -> dict[str, Any]:
  """Return service status and the notification engine's next run times."""
  engine = getattr(request.app.state, "notification_engine", None)
  return {"status": "ok", "version": __version__, "notifications": engine.get_status() if engine is not None else {"is_running": False, "jobs": []}}


app.include_router(push.router, prefix="/api/notifications", tags=["push"])
