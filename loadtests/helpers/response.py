"""Turn Canopy Orders error bodies into one-line messages for Locust.

Two body shapes reach the load generator: FastAPI request validation
(``{"detail": [...]}``) and order failures (``{"error": "<code>", ...}``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response

_MAX_LENGTH = 300


def _validation_summary(detail: list) -> str:
    messages = []
    for err in detail:
        where = ".".join(str(p) for p in err.get("loc", []))
        what = err.get("msg", str(err))
        messages.append(f"{where}: {what}" if where else what)
    return " | ".join(messages)


def _failure_summary(body: dict) -> str:
    code = str(body["error"])
    if isinstance(body.get("errors"), dict):
        fields = " | ".join(f"{name}: {msgs}" for name, msgs in body["errors"].items())
        return f"{code}: {fields}"
    context = [str(body[key]) for key in ("reason", "current_status", "requested_status") if body.get(key)]
    return f"{code} ({', '.join(context)})" if context else code


def extract_error_detail(response: Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:_MAX_LENGTH] or "(empty response body)"

    if isinstance(body, dict) and isinstance(body.get("detail"), list):
        return _validation_summary(body["detail"])
    if isinstance(body, dict) and "error" in body:
        return _failure_summary(body)
    return str(body)[:_MAX_LENGTH]
