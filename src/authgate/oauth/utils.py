"""Browser-facing response helpers shared by provider handlers."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

from aiohttp import web

REQUESTED_WITH_HEADER = "X-Requested-With"
DEFAULT_REQUESTED_WITH = "XMLHttpRequest"


def error_to_dict(error: BaseException) -> dict[str, str]:
    """Serialize an exception for the auth-result message."""
    return {"name": type(error).__name__, "message": str(error)}


def post_message_response(data: dict[str, Any], target_origin: str = "*") -> web.Response:
    """Render an HTML page that hands ``data`` to the window that opened it.

    The popup posts the message to ``window.opener`` (or ``window.parent``
    when framed) and closes itself. The payload travels base64-encoded so it
    cannot break out of the script element, and the Content-Security-Policy
    pins the exact inline script by hash.
    """
    json_data = json.dumps(data, ensure_ascii=True, separators=(",", ":"))
    b64_data = base64.b64encode(json_data.encode("ascii")).decode("ascii")

    script = (
        f"(window.opener || window.parent).postMessage("
        f"JSON.parse(atob('{b64_data}')), {json.dumps(target_origin)});\n"
        "window.close();"
    )
    script_hash = base64.b64encode(hashlib.sha256(script.encode("utf-8")).digest()).decode("ascii")

    return web.Response(
        text=f"<html><body><script>{script}</script></body></html>",
        content_type="text/html",
        headers={
            "X-Frame-Options": "sameorigin",
            "Content-Security-Policy": f"script-src 'sha256-{script_hash}'",
        },
    )


def ensures_x_requested_with(
    request: web.Request,
    expected: str = DEFAULT_REQUESTED_WITH,
) -> bool:
    """Lightweight CSRF guard for script-initiated requests.

    Cross-site forms cannot set custom headers, so the presence of the
    expected ``X-Requested-With`` value marks a same-origin script request.
    This is not a cryptographic check.
    """
    value = request.headers.get(REQUESTED_WITH_HEADER)
    return bool(value) and value == expected
