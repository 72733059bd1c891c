"""Transport - Builds the long-lived httpx.Client a GatewayClient sends through.

Base URL, default headers, timeout and TLS settings are transport concerns;
the gateway itself only issues requests on the client it is given.
"""

from __future__ import annotations

import ssl
from typing import Any

import httpx

from rest_gateway.errors import GatewayClientError
from rest_gateway.models import GatewayConfig


class TransportConfigError(GatewayClientError):
    """Raised when a GatewayConfig cannot be turned into an HTTP client."""


def build_client_kwargs(config: GatewayConfig) -> dict[str, Any]:
    """Translate a GatewayConfig into httpx.Client constructor arguments.

    Raises:
        TransportConfigError: If OpenSSL rejects config.ciphers.
    """
    kwargs: dict[str, Any] = {
        "base_url": config.base_url,
        "headers": config.headers,
        "timeout": config.timeout,
        "follow_redirects": config.follow_redirects,
    }

    if config.cert and config.key:
        cert_parts = (config.cert, config.key, config.key_password)
        kwargs["cert"] = cert_parts if config.key_password else cert_parts[:2]

    verify = _verify_setting(config)
    if verify is not None:
        kwargs["verify"] = verify
    return kwargs


def _verify_setting(config: GatewayConfig) -> ssl.SSLContext | str | bool | None:
    """Value for httpx's verify argument, or None to keep its default."""
    if not config.ciphers:
        if config.ca_bundle:
            return config.ca_bundle
        return None if config.verify_ssl else False

    # httpx takes a cipher list only through an SSLContext
    context = ssl.create_default_context()
    try:
        context.set_ciphers(config.ciphers)
    except ssl.SSLError as e:
        raise TransportConfigError(f"Invalid cipher string '{config.ciphers}': {e}") from e
    if config.ca_bundle:
        context.load_verify_locations(config.ca_bundle)
    elif not config.verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def build_client(config: GatewayConfig, **overrides: Any) -> httpx.Client:
    """Create an httpx.Client for config. overrides win over derived kwargs."""
    kwargs = build_client_kwargs(config)
    kwargs.update(overrides)
    return httpx.Client(**kwargs)
