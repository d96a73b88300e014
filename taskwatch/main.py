from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from taskwatch.config import settings
from taskwatch.db import init_models
from taskwatch.deps import build_monitor, set_monitor
from taskwatch.errors import ConfigurationError, NotInitializedError, RemoteError
from taskwatch.logging_setup import configure_logging
from taskwatch.routers.tasks import router as tasks_router
from taskwatch.routers.triggers import router as triggers_router

logger = logging.getLogger(__name__)

app = FastAPI(title="taskwatch", version=settings.app_version)


@app.exception_handler(RemoteError)
async def _remote_error_handler(_, exc: RemoteError) -> JSONResponse:
  return JSONResponse(
    status_code=502,
    content={"detail": {"message": exc.message, "statusCode": exc.status_code, "remote": exc.details}},
  )


@app.exception_handler(NotInitializedError)
async def _not_initialized_handler(_, exc: NotInitializedError) -> JSONResponse:
  return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def _configuration_error_handler(_, exc: ConfigurationError) -> JSONResponse:
  return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(triggers_router)
app.include_router(tasks_router)


@app.get("/health")
async def health() -> dict:
  return {"ok": True, "version": settings.app_version, "timezone": settings.timezone}


@app.on_event("startup")
async def _startup() -> None:
  configure_logging(settings.log_level)
  await init_models()
  set_monitor(await build_monitor())
  logger.info("taskwatch %s started (timezone %s)", settings.app_version, settings.timezone)


@app.on_event("shutdown")
async def _shutdown() -> None:
  set_monitor(None)
