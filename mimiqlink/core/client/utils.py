"""Helpers shared by the credential and execution calls."""

from typing import Any, Optional

import requests

from .exceptions import RemoteRequestError

JSON_HEADERS = {"Content-Type": "application/json"}


def join_url(base: str, *parts: Any) -> str:
    """Join `base` and path segments with single slashes."""
    segments = [str(base).rstrip("/")]
    segments.extend(str(p).strip("/") for p in parts if str(p).strip("/"))
    return "/".join(segments)


def _json_message(response: requests.Response) -> Optional[str]:
    if not response.content:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and "message" in body:
        return str(body["message"])
    return None


def error_message(response: requests.Response, context: str = "Error") -> str:
    """Return "<context>: <message>" for an error response."""
    message = _json_message(response)
    if message is None:
        return f"{context}: Server responded with code {response.status_code}"
    return f"{context}: {message}"


def check_response(response: requests.Response, context: str = "Error") -> None:
    """Raise RemoteRequestError if `response` is not a 2xx answer."""
    if response.status_code < 300:
        return
    raise RemoteRequestError(
        message=error_message(response, context),
        status_code=response.status_code,
        response_text=response.text,
    )
