"""Calls against the sign-in, refresh, limits and gateway token endpoints."""

import base64
import logging
from typing import Optional, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from .config import MIMIQ_API_ROOT
from .exceptions import AuthenticationError
from .models import JWTToken, Tokens, UserLimits
from .utils import JSON_HEADERS, error_message, join_url

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _http(session: Optional[requests.Session]):
    return session if session is not None else requests


def _parse(model: type[M], response: requests.Response, context: str) -> M:
    """Validate a 2xx body, rejecting answers without usable fields."""
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise AuthenticationError(
            message=f"{context}: unexpected response from server",
            status_code=response.status_code,
            response_text=response.text,
        ) from e


def remote_login(
    uri: str, email: str, password: str, session: Optional[requests.Session] = None
) -> Tokens:
    """Sign in with email and password."""
    response = _http(session).post(
        join_url(uri, MIMIQ_API_ROOT, "sign-in"),
        json={"email": email, "password": password},
        headers=JSON_HEADERS,
    )
    if response.status_code >= 300:
        raise AuthenticationError(
            message=error_message(response, "Failed login"),
            status_code=response.status_code,
            response_text=response.text,
        )
    return _parse(Tokens, response, "Failed login")


def refresh(refresh_token: str, uri: str, session: Optional[requests.Session] = None) -> Tokens:
    """Exchange the refresh token for a new pair of tokens."""
    response = _http(session).post(
        join_url(uri, MIMIQ_API_ROOT, "access-token"),
        json={"refreshToken": refresh_token},
        headers=JSON_HEADERS,
    )
    if response.status_code >= 300:
        raise AuthenticationError(
            message="Failed to refresh connection to MIMIQ, please try to connect again.",
            status_code=response.status_code,
            response_text=response.text,
        )
    return _parse(Tokens, response, "Failed to refresh connection to MIMIQ")


def fetch_user_limits(
    uri: str, tokens: Tokens, session: Optional[requests.Session] = None
) -> UserLimits:
    response = _http(session).get(
        join_url(uri, MIMIQ_API_ROOT, "users/limits"),
        headers={"Authorization": f"Bearer {tokens.access_token}"},
    )
    if response.status_code >= 300:
        raise AuthenticationError(
            message=error_message(response, "Failed to request user data"),
            status_code=response.status_code,
            response_text=response.text,
        )
    return _parse(UserLimits, response, "Failed to request user data")


def check_limits(limits: UserLimits) -> None:
    """Warn when the account went over one of its enabled limits."""
    if limits.enabled_execution_time:
        used = round(limits.used_execution_time / 60)
        maximum = round(limits.max_execution_time / 60)
        if used > maximum:
            logger.warning("You exceeded your computing time limit of %d minutes", maximum)
    if limits.enabled_max_executions:
        if limits.used_executions > limits.max_executions:
            logger.warning(
                "You exceeded your number of executions limit of %d", limits.max_executions
            )


def get_planqk_token(
    gateway_url: str,
    consumer_key: str,
    consumer_secret: str,
    session: Optional[requests.Session] = None,
) -> JWTToken:
    """Acquire a client-credentials token from the PlanQK gateway."""
    creds = base64.b64encode(f"{consumer_key}:{consumer_secret}".encode("utf-8")).decode("ascii")
    response = _http(session).post(
        join_url(gateway_url, "token"),
        data="grant_type=client_credentials",
        headers={
            "Authorization": f"Basic {creds}",
            "Content-Type": "application/x-www-form-urlencoded",
        },
    )
    if response.status_code >= 300:
        raise AuthenticationError(
            message=error_message(response, "Failed to obtain PlanQK token"),
            status_code=response.status_code,
            response_text=response.text,
        )
    return _parse(JWTToken, response, "Failed to obtain PlanQK token")
