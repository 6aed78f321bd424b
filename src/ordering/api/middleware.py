"""HTTP middleware for the Ordering API."""

from uuid import uuid4

from fastapi import FastAPI, Request

from ordering.domain import ordering
from ordering.utils.logging import add_context, clear_context


def install_request_context(app: FastAPI) -> None:
    """Push the ordering domain context and bind log context for every request."""

    @app.middleware("http")
    async def ordering_context_middleware(request: Request, call_next):
        clear_context()
        add_context(
            request_id=request.headers.get("x-request-id") or uuid4().hex,
            path=request.url.path,
            actor_id=request.headers.get("x-actor-id"),
        )
        with ordering.domain_context():
            response = await call_next(request)
        return response
