"""Gateway - Sends one request to a downstream REST endpoint per call.

GatewayClient resolves a URI template, issues the request through an injected
httpx.Client, and either decodes the success body into the caller's type or
raises GatewayError for any 4xx/5xx status.

Usage:
    client = GatewayClient(httpx.Client(base_url="https://users.internal"))
    user = client.get_request("/users/{id}", path_variables={"id": "7"}, response_type=User)

Or with a config, letting the gateway own the transport:
    with GatewayClient.from_config(config) as client:
        client.send_request("/users", body=new_user, method="POST", response_type=User)

Or from a named entry in a gateways YAML file:
    with GatewayClient.from_config_file(Path("gateways.yaml"), "users") as client:
        client.get_request("/health")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx

from rest_gateway.codec import (
    FORM_MEDIA_TYPE,
    JSON_MEDIA_TYPE,
    decode_response,
    encode_form,
    to_json_payload,
)
from rest_gateway.config_loader import load_gateway_config
from rest_gateway.errors import GatewayError, UriBuildError
from rest_gateway.models import BodyEncoding, GatewayConfig, GatewayRequest
from rest_gateway.transport import build_client
from rest_gateway.uri_builder import resolve_uri

logger = logging.getLogger(__name__)

# Longest error body excerpt written to the debug log
_LOG_BODY_LIMIT = 200


def is_error_status(status_code: int) -> bool:
    """True for 4xx and 5xx. Everything else is routed to decoding."""
    return 400 <= status_code < 600


@runtime_checkable
class GatewayService(Protocol):
    """The three gateway operations, for callers that want to swap in a fake."""

    def send_request(
        self,
        path: str,
        body: Any = None,
        method: str = "POST",
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any: ...

    def send_form_request(
        self,
        path: str,
        body: Any,
        method: str = "POST",
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any: ...

    def get_request(
        self,
        path: str,
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any: ...


class GatewayClient:
    """Builds and sends requests through a shared httpx.Client.

    The client holds no per-call state, so one instance can serve concurrent
    callers as long as the httpx.Client does (httpx.Client is thread-safe).
    """

    def __init__(self, client: httpx.Client) -> None:
        """Initialize the gateway.

        Args:
            client: Transport to send requests on. Base URL, default headers,
                    timeouts and TLS are its configuration, not the gateway's.
                    The caller keeps ownership and closes it.
        """
        self._client = client
        self._owns_client = False

    @classmethod
    def from_config(cls, config: GatewayConfig, **client_overrides: Any) -> "GatewayClient":
        """Create a gateway with its own transport built from config.

        The gateway owns that transport and closes it in close().
        """
        gateway = cls(build_client(config, **client_overrides))
        gateway._owns_client = True
        return gateway

    @classmethod
    def from_config_file(
        cls, config_path: Path, name: str, **client_overrides: Any
    ) -> "GatewayClient":
        """Create an owning gateway from the named entry of a gateways YAML file.

        Raises:
            ConfigError: If the file is missing, malformed, or has no such gateway.
        """
        config = load_gateway_config(config_path, name)
        logger.debug("Loaded gateway '%s' from %s (base_url=%s)", name, config_path, config.base_url)
        return cls.from_config(config, **client_overrides)

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport if this gateway created it."""
        if self._owns_client:
            self._client.close()

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def send_request(
        self,
        path: str,
        body: Any = None,
        method: str = "POST",
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any:
        """Send a request with an optional JSON body.

        Args:
            path: Path template, e.g. "/users/{id}".
            body: Sent JSON-encoded when not None. None sends no body at all.
            method: HTTP method.
            query_params: Appended literally to the URI. None adds nothing.
            path_variables: Values for {name} placeholders. None skips expansion.
            headers: Added to the request on top of the transport's defaults.
            response_type: Type to decode a success body into.

        Returns:
            The success body decoded as response_type (None for an empty body).

        Raises:
            UriBuildError: If the URI cannot be built.
            GatewayError: If the response status is 4xx or 5xx.
        """
        request = GatewayRequest(
            path=path,
            method=method,
            query_params=query_params,
            path_variables=path_variables,
            headers=headers,
            body=body,
            body_encoding=BodyEncoding.JSON if body is not None else BodyEncoding.NONE,
        )
        return self.exchange(request, response_type)

    def send_form_request(
        self,
        path: str,
        body: Any,
        method: str = "POST",
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any:
        """Send a request with a form-urlencoded body.

        Same contract as send_request, except body is required and nested
        fields are flattened (see codec.flatten_form).

        Raises:
            ValueError: If body is None (raised before any I/O).
        """
        if body is None:
            raise ValueError("send_form_request requires a body")
        request = GatewayRequest(
            path=path,
            method=method,
            query_params=query_params,
            path_variables=path_variables,
            headers=headers,
            body=body,
            body_encoding=BodyEncoding.FORM,
        )
        return self.exchange(request, response_type)

    def get_request(
        self,
        path: str,
        query_params: Mapping[str, str] | None = None,
        path_variables: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
    ) -> Any:
        """Send a GET request without a body. Same contract as send_request."""
        request = GatewayRequest(
            path=path,
            method="GET",
            query_params=query_params,
            path_variables=path_variables,
            headers=headers,
        )
        return self.exchange(request, response_type)

    def exchange(self, request: GatewayRequest, response_type: Any = Any) -> Any:
        """Resolve and send a prepared request descriptor."""
        url = resolve_uri(request.path, request.query_params, request.path_variables)
        return self._send(
            url, request.method, request.headers, request.body, request.body_encoding, response_type
        )

    def send_to_url(
        self,
        url: httpx.URL | str,
        body: Any = None,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        response_type: Any = Any,
        body_encoding: BodyEncoding | None = None,
    ) -> Any:
        """Send to a URI the caller already resolved, skipping template handling.

        body_encoding defaults to JSON when a body is given and NONE otherwise.
        """
        if isinstance(url, str):
            try:
                url = httpx.URL(url)
            except httpx.InvalidURL as e:
                raise UriBuildError(f"Invalid URI '{url}': {e}") from e
        if body_encoding is None:
            body_encoding = BodyEncoding.JSON if body is not None else BodyEncoding.NONE
        if body_encoding == BodyEncoding.FORM and body is None:
            raise ValueError("form requests require a body")
        return self._send(url, method.upper(), headers, body, body_encoding, response_type)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _send(
        self,
        url: httpx.URL,
        method: str,
        headers: Mapping[str, str] | None,
        body: Any,
        body_encoding: BodyEncoding,
        response_type: Any,
    ) -> Any:
        request_headers: dict[str, str] = dict(headers) if headers else {}

        content: bytes | None = None
        json_body: Any = None

        media_type: str | None = None
        if body is not None and body_encoding == BodyEncoding.JSON:
            json_body = to_json_payload(body)
            media_type = JSON_MEDIA_TYPE
        elif body is not None and body_encoding == BodyEncoding.FORM:
            content = encode_form(body)
            media_type = FORM_MEDIA_TYPE

        # Caller-supplied Content-Type wins
        if media_type and "content-type" not in {k.lower() for k in request_headers}:
            request_headers["Content-Type"] = media_type

        http_response = self._client.request(
            method=method,
            url=url,
            headers=request_headers if request_headers else None,
            content=content,
            json=json_body,
        )
        status = http_response.status_code
        logger.debug("%s %s -> %d", method, url, status)

        if is_error_status(status):
            error_body = http_response.text
            logger.debug(
                "%s %s failed with %d: %s", method, url, status, error_body[:_LOG_BODY_LIMIT]
            )
            raise GatewayError(
                status,
                error_body,
                method=method,
                url=str(http_response.request.url),
                headers=http_response.headers,
            )

        return decode_response(http_response, response_type)
