"""
FastAPI service exposing the location resolver.

Endpoints:
  POST /resolve/incident   - One region/municipality/location triple
  POST /resolve/incidents  - A scrape batch of incident records, offset per batch
  POST /resolve/alert      - A 112 alert text (plus optional tokens / context)
  GET  /health             - Gazetteer and cache statistics
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from firemap_geo.config import get_settings
from firemap_geo.logging_config import setup_logging
from firemap_geo.models import (
    AlertRequest,
    AlertResolution,
    GeocodedIncident,
    HealthResponse,
    IncidentBatchRequest,
    LocationQuery,
    ResolvedLocation,
)
from firemap_geo.resolver import LocationResolver

logger = logging.getLogger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load the gazetteer (fatal if missing). Shutdown: close the HTTP client."""
    setup_logging()
    logger.info("Starting up API server...")
    owned = getattr(app.state, "resolver", None) is None
    if owned:
        app.state.resolver = LocationResolver.create()
    yield
    if owned:
        await app.state.resolver.aclose()
        app.state.resolver = None
    logger.info("API server shut down.")


def get_resolver(request: Request) -> LocationResolver:
    return request.app.state.resolver


# ── App ───────────────────────────────────────────────────────────────

def create_app(resolver: Optional[LocationResolver] = None) -> FastAPI:
    """Build the app. A pre-built resolver skips gazetteer loading at start-up."""
    app = FastAPI(
        title="Fire Map Geo API",
        description="Resolve Greek fire-incident and 112-alert place names to coordinates",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.resolver = resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ══════════════════════════════════════════════════════════════════
    # ENDPOINTS
    # ══════════════════════════════════════════════════════════════════

    @app.post("/resolve/incident", response_model=ResolvedLocation)
    async def resolve_incident(
        query: LocationQuery, resolver: LocationResolver = Depends(get_resolver),
    ):
        """Resolve a single incident description. No marker offsetting."""
        return await resolver.resolve(query)

    @app.post("/resolve/incidents", response_model=list[GeocodedIncident])
    async def resolve_incidents(
        body: IncidentBatchRequest, resolver: LocationResolver = Depends(get_resolver),
    ):
        """
        Resolve a batch sequentially. Incidents in the same municipality are
        fanned out around the shared point so every marker stays visible.
        """
        max_batch = get_settings().api.max_batch_size
        if len(body.incidents) > max_batch:
            raise HTTPException(413, f"At most {max_batch} incidents per request")
        return await resolver.resolve_incidents(body.incidents, resolver.new_tracker())

    @app.post("/resolve/alert", response_model=AlertResolution)
    async def resolve_alert(
        body: AlertRequest, resolver: LocationResolver = Depends(get_resolver),
    ):
        """Extract the alert's places and resolve them; safe zones only as a fallback."""
        return await resolver.resolve_alert(
            body.text, tokens=body.tokens, regional_context=body.regional_context,
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(resolver: LocationResolver = Depends(get_resolver)):
        stats = resolver.stats()
        return HealthResponse(
            status="ok",
            gazetteer_version=stats["version"],
            gazetteer_keys=stats["keys"],
            gazetteer_entries=stats["entries"],
            runtime_additions=stats["runtime_additions"],
            cache_entries=stats["cache_entries"],
        )

    return app


app = create_app()
