"""Exceptions raised by rest-gateway.

Transport failures (httpx.TransportError and friends) and response decoding
failures (pydantic.ValidationError) are not wrapped; they reach the caller as
the underlying library raised them.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Mapping


class GatewayClientError(Exception):
    """Base class for rest-gateway errors."""


class UriBuildError(GatewayClientError, ValueError):
    """Raised when a request URI cannot be built (missing path variable, bad path)."""


class GatewayError(GatewayClientError):
    """Raised for any downstream response with a 4xx or 5xx status.

    error_body is the raw response text. It is never decoded into the caller's
    response type; interpreting it is left to the caller.
    """

    def __init__(
        self,
        status: int,
        error_body: str,
        method: str | None = None,
        url: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.status = status
        self.error_body = error_body
        self.method = method
        self.url = url
        self.headers: dict[str, str] = dict(headers) if headers else {}
        super().__init__(self._format_message())

    @property
    def reason(self) -> str:
        """Standard reason phrase for the status, or "" if non-standard."""
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return ""

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status < 600

    def _format_message(self) -> str:
        status = f"{self.status} {self.reason}".rstrip()
        if self.method and self.url:
            return f"{self.method} {self.url} failed with {status}: {self.error_body}"
        return f"Gateway error {status}: {self.error_body}"

    def __reduce__(self):  # type: ignore[override]
        return (
            self.__class__,
            (self.status, self.error_body, self.method, self.url, self.headers),
        )
