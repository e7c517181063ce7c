"""Response error extraction for load test observability.

Parses checkout API error responses into human-readable messages.
Handles three response shapes:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "...", "type": "..."}]}
- Domain errors (400/409): {"error": "code", "messages": {"field": ["msg", ...]}}
- Collaborator errors (402/404/503): {"error": "code", "detail" or "reason": "msg"}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    """
    try:
        body = response.json()
    except Exception:
        # Not JSON — return raw text, truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if "detail" in body and isinstance(body["detail"], list):
        parts = []
        for err in body["detail"]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    if isinstance(body.get("messages"), dict):
        return " | ".join(f"{field}: {'; '.join(msgs)}" for field, msgs in body["messages"].items())

    if "error" in body:
        reason = body.get("reason") or body.get("detail")
        return f"{body['error']}: {reason}" if reason else str(body["error"])

    return str(body)[:300]


def is_stock_conflict(response: Response) -> bool:
    """A 409 means the buyer lost a race for stock: expected under contention, not a failure."""
    return response.status_code == 409
