"""Response error extraction for load test observability.

Parses dispatch API error responses into human-readable messages.
Handles two response shapes:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "...", "type": "..."}]}
- Dispatch refusals (404/409/422): {"detail": {"error": "Kind", "message": "...", "reason": "..."}}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a compact error message for Locust failure messages and log lines."""
    try:
        body = response.json()
    except ValueError:
        # Not JSON, return raw text, truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    detail = body.get("detail") if isinstance(body, dict) else None

    if isinstance(detail, list):
        parts = []
        for err in detail:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    if isinstance(detail, dict) and "error" in detail:
        parts = [detail["error"]]
        if detail.get("reason"):
            parts.append(detail["reason"])
        if detail.get("message"):
            parts.append(detail["message"])
        return ": ".join(parts)

    return str(body)[:300]
