"""Pydantic models for credentials, usage limits and executions."""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


def mask_secret(secret: Optional[str]) -> str:
    if secret and len(secret) >= 8:
        return f"{secret[:4]}...{secret[-4:]}"
    if secret:
        return "[set]"
    return "[missing]"


class Tokens(BaseModel):
    """Access and refresh tokens of the native MIMIQ services.

    A refresh never mutates a value in place: it produces a new Tokens.
    """

    access_token: str = Field(alias="token", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)

    class Config:
        populate_by_name = True
        frozen = True

    @classmethod
    def empty(cls) -> "Tokens":
        """Sentinel published when the connection dropped."""
        return cls.model_construct(access_token="", refresh_token="")

    @property
    def is_empty(self) -> bool:
        return not self.access_token

    def __repr__(self) -> str:
        return f"Tokens(access={mask_secret(self.access_token)}, refresh={mask_secret(self.refresh_token)})"

    __str__ = __repr__


class JWTToken(BaseModel):
    """OAuth2 client-credentials token issued by the PlanQK gateway."""

    access_token: str = Field(min_length=1)
    scope: str = ""
    token_type: str = "Bearer"
    # Lifetime in seconds
    expires_in: int = 0

    class Config:
        frozen = True

    @classmethod
    def empty(cls) -> "JWTToken":
        return cls.model_construct(access_token="")

    @property
    def is_empty(self) -> bool:
        return not self.access_token

    def __repr__(self) -> str:
        return f"JWTToken(access_token={mask_secret(self.access_token)}, expires_in={self.expires_in})"

    __str__ = __repr__


class UserLimits(BaseModel):
    """Account usage limits reported by `users/limits`.

    Execution times are in seconds, `max_timeout` in minutes.
    """

    enabled_max_executions: bool = Field(default=False, alias="enabledMaxExecutions")
    used_executions: int = Field(default=0, alias="usedExecutions")
    max_executions: int = Field(default=0, alias="maxExecutions")
    enabled_execution_time: bool = Field(default=False, alias="enabledExecutionTime")
    used_execution_time: float = Field(default=0, alias="usedExecutionTime")
    max_execution_time: float = Field(default=0, alias="maxExecutionTime")
    enabled_max_timeout: bool = Field(default=False, alias="enabledMaxTimeout")
    max_timeout: float = Field(default=0, alias="maxTimeout")

    class Config:
        populate_by_name = True
        frozen = True


class TokenFile(BaseModel):
    """Contents of a saved token file."""

    url: str
    # Refresh token
    token: str


class Execution(BaseModel):
    """Handle to an execution on the MIMIQ services."""

    id: str

    class Config:
        frozen = True

    def __str__(self) -> str:
        return self.id
