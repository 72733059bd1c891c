"""Data models for rest-gateway.

All models use Pydantic v2. The request descriptor is ephemeral (built and
consumed within one call); the config models describe how the long-lived
transport is constructed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Request Models
# =============================================================================


class BodyEncoding(str, Enum):
    """How a request body is put on the wire."""

    NONE = "none"
    JSON = "json"
    FORM = "form"


class GatewayRequest(BaseModel):
    """One outbound request, described declaratively.

    None for query_params, path_variables or headers means "omit". This matters
    for path_variables: an empty mapping still expands placeholders (and fails
    on any that are referenced), while None leaves them untouched.
    """

    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    path: str = Field(description="Path template, e.g., /users/{id}")
    method: str = Field(default="GET", description="HTTP method (GET, POST, etc.)")
    query_params: dict[str, str] | None = Field(
        default=None, description="Query parameters appended literally"
    )
    path_variables: dict[str, str] | None = Field(
        default=None, description="Values for {name} placeholders in path"
    )
    headers: dict[str, str] | None = Field(default=None, description="Extra request headers")
    body: Any = Field(default=None, description="Payload of caller-chosen shape")
    body_encoding: BodyEncoding = Field(
        default=BodyEncoding.NONE, description="none, json, or form"
    )

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        method = v.strip().upper()
        if not method or not method.isalpha():
            raise ValueError(f"invalid HTTP method: {v!r}")
        return method

    @model_validator(mode="after")
    def check_body_encoding(self) -> Self:
        # A form request without a body has nothing to encode
        if self.body_encoding == BodyEncoding.FORM and self.body is None:
            raise ValueError("form requests require a body")
        return self


# =============================================================================
# Configuration Models
# =============================================================================


class GatewayConfig(BaseModel):
    """How to build the transport for one downstream service."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(description="Base URL requests resolve against")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent on every request (supports ${ENV_VAR} substitution)",
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    follow_redirects: bool = Field(default=False, description="Follow 3xx responses")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to CA bundle")
    cert: str | None = Field(default=None, description="Client certificate path (mTLS)")
    key: str | None = Field(default=None, description="Client key path (mTLS)")
    key_password: str | None = Field(default=None, description="Client key password")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")

    @model_validator(mode="after")
    def check_cert_pair(self) -> Self:
        if (self.cert is None) != (self.key is None):
            raise ValueError("cert and key must be given together")
        return self


class GatewaysFile(BaseModel):
    """Top-level gateway configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    gateways: dict[str, GatewayConfig] = Field(description="Gateway name -> config mapping")
