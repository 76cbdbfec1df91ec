"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from crossview import __version__
from crossview.api.errors import register_exception_handlers
from crossview.api.routes import router
from crossview.crossplane.views import CrossplaneViews
from crossview.models.config import CrossviewConfig
from crossview.repository.base import KubernetesRepository


def create_app(
    repository: KubernetesRepository,
    views: CrossplaneViews | None = None,
    config: CrossviewConfig | None = None,
) -> FastAPI:
    """Build the app around an already-constructed repository.

    The repository's lifecycle belongs to the caller; the app never closes it.
    """
    config = config or CrossviewConfig()
    app = FastAPI(
        title="Crossview",
        version=__version__,
        description="Read-only access to Crossplane and Kubernetes resources across cluster contexts.",
    )
    app.state.repository = repository
    app.state.views = views or CrossplaneViews(
        repository,
        claims_page_size=config.query.claims_page_size,
        type_timeout_s=config.query.type_timeout_seconds,
    )
    register_exception_handlers(app)
    app.include_router(router, prefix="/api")
    app.mount("/metrics", make_asgi_app())
    return app
