"""Body codec - Prepares request payloads and decodes success responses.

Request bodies go out as JSON or as urlencoded forms. Success bodies are
decoded into whatever type the caller asks for through a pydantic TypeAdapter,
so models, dataclasses, TypedDicts, builtin containers and Any all work the
same way.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, TypeAdapter
from pydantic_core import to_jsonable_python

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def to_json_payload(body: Any) -> Any:
    """Convert body into plain JSON-compatible data for httpx's json= argument."""
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True)
    return to_jsonable_python(body, by_alias=True)


def _form_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten_into(pairs: list[tuple[str, str]], prefix: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            _flatten_into(pairs, f"{prefix}.{key}" if prefix else str(key), item)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            if isinstance(item, (Mapping, list)):
                _flatten_into(pairs, f"{prefix}[{index}]", item)
            else:
                # Scalars repeat the key: tags=a&tags=b
                _flatten_into(pairs, prefix, item)
    else:
        pairs.append((prefix, _form_scalar(value)))


def flatten_form(body: Any) -> list[tuple[str, str]]:
    """Flatten a mapping or model into form fields.

    Nested mappings use dotted keys (address.city), lists of scalars repeat the
    key, lists of mappings use indexed keys (items[0].name). None values are
    dropped and booleans become "true"/"false".

    Raises:
        TypeError: If body does not serialize to a mapping.
    """
    data = to_json_payload(body)
    if not isinstance(data, Mapping):
        raise TypeError(
            f"Form body must be a mapping or model, got {type(body).__name__}"
        )
    pairs: list[tuple[str, str]] = []
    _flatten_into(pairs, "", data)
    return pairs


def encode_form(body: Any) -> bytes:
    """Encode body as application/x-www-form-urlencoded bytes.

    str and bytes bodies are taken as already encoded.
    """
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return urlencode(flatten_form(body)).encode("ascii")


@lru_cache(maxsize=256)
def _type_adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


def decode_response(response: httpx.Response, response_type: Any = Any) -> Any:
    """Decode a success response body into response_type.

    httpx.Response returns the response itself, bytes the raw content and str
    the decoded text. Any other type is validated from JSON. An empty body
    decodes to None for every type except httpx.Response.

    Raises:
        pydantic.ValidationError: If the body does not fit response_type.
    """
    if response_type is httpx.Response:
        return response
    if response_type is None or response_type is type(None):
        return None
    if not response.content:
        return None
    if response_type is bytes:
        return response.content
    if response_type is str:
        return response.text
    return _type_adapter(response_type).validate_json(response.content)
