from __future__ import annotations

from time import monotonic

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stageboard.config import settings
from stageboard.db import init_db
from stageboard.logs import configure_logging
from stageboard.metrics import api_metrics
from stageboard.routers.boards import router as boards_router
from stageboard.routers.columns import router as columns_router
from stageboard.routers.tasks import router as tasks_router
from stageboard.seed import seed

app = FastAPI(
  title="Stageboard Store API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(boards_router)
app.include_router(columns_router)
app.include_router(tasks_router)


@app.middleware("http")
async def _request_metrics_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  api_metrics.observe("api", ok=response.status_code < 500, latency_ms=elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.get("/system/metrics")
async def system_metrics() -> dict:
  return api_metrics.snapshot()


@app.on_event("startup")
async def _startup() -> None:
  configure_logging()
  await init_db()
  await seed()
