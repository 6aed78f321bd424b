"""Canopy Orders FastAPI application.

Serves the order fulfillment lifecycle over HTTP. Every request runs inside
the ordering domain context and carries structured log context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay and the default log level.
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from ordering.domain import ordering
from ordering.utils.logging import configure_logging, get_logger

configure_logging()
ordering.init()

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Canopy Orders API",
    description="Order fulfillment lifecycle for cannabis associations and their suppliers",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from ordering.api.errors import register_failure_handlers  # noqa: E402
from ordering.api.middleware import install_request_context  # noqa: E402

install_request_context(app)
register_exception_handlers(app)
register_failure_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from ordering.api import order_router, organization_router, patient_router  # noqa: E402

app.include_router(patient_router)
app.include_router(organization_router)
app.include_router(order_router)

logger.info("Canopy Orders API ready", domain=ordering.name)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": ordering.name})
