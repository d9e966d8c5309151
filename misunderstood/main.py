"""FastAPI application wiring for the misunderstood-message triage service.

- Configures logging, optional CORS for the admin UI and Prometheus metrics.
- Exposes the operator API under ``/api/bots/{bot_id}/misunderstood`` and a
  health endpoint.
"""

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.settings import load_settings
from .routers import misunderstood

load_dotenv()

logger = logging.getLogger(__name__)

settings = load_settings()

app = FastAPI(title="Misunderstood messages", version=__version__)
init_logging(app)
if settings.admin_ui_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.admin_ui_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.include_router(misunderstood.router)

Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
def health() -> dict[str, object]:
    """Liveness probe with build information."""

    return {
        "status": "ok",
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
