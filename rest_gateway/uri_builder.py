"""URI builder - Resolves path templates into request URIs.

A template is a path (optionally with a query string, or a full URL) that may
contain {name} placeholders. Resolution order is fixed:

1. Placeholders are expanded, but only when path_variables is not None.
   With path_variables=None, {name} text is left as-is.
2. Query parameters are appended literally. Their values are never treated as
   templates, and a query key that shares a name with a placeholder does not
   take part in expansion.
"""

from __future__ import annotations

import re
from typing import Mapping
from urllib.parse import quote

import httpx

from rest_gateway.errors import UriBuildError

# {name} or {name:regex}; nested braces are not supported
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")

# Characters left unencoded when a variable value lands in a path segment
# (RFC 3986 pchar minus percent) or in the query string (minus & = + #).
_PATH_SAFE = "/:@!$&'()*+,;="
_QUERY_SAFE = "/?:@!$'()*,;"


def _encode_value(value: object, safe: str) -> str:
    return quote(str(value), safe=safe)


def _expand(component: str, variables: Mapping[str, str], safe: str, template: str) -> str:
    def replacer(match: re.Match) -> str:
        name = match.group(1).split(":", 1)[0].strip()
        if name not in variables:
            raise UriBuildError(
                f"Missing value for path variable '{name}' in '{template}'"
            )
        return _encode_value(variables[name], safe)

    return _PLACEHOLDER.sub(replacer, component)


def expand_template(template: str, path_variables: Mapping[str, str]) -> str:
    """Expand every {name} placeholder in template.

    Path and query are expanded separately so each value is encoded for the
    component it ends up in. A "?" inside a path value is encoded instead of
    starting the query string.

    Raises:
        UriBuildError: If a placeholder has no matching entry.
    """
    path, sep, rest = template.partition("?")
    if sep:
        query, frag_sep, fragment = rest.partition("#")
    else:
        path, frag_sep, fragment = path.partition("#")
        query = ""

    expanded = _expand(path, path_variables, _PATH_SAFE, template)
    if sep:
        expanded += "?" + _expand(query, path_variables, _QUERY_SAFE, template)
    if frag_sep:
        expanded += "#" + fragment
    return expanded


def resolve_uri(
    base_path: str,
    query_params: Mapping[str, str] | None = None,
    path_variables: Mapping[str, str] | None = None,
) -> httpx.URL:
    """Build the request URI from a template, query parameters and path variables.

    Args:
        base_path: Path template, e.g. "/users/{id}". May be relative (resolved
            against the client's base_url by httpx) or absolute.
        query_params: Appended after any query already present in base_path,
            in mapping iteration order. None means no extra parameters.
        path_variables: Values for {name} placeholders. None skips expansion.

    Returns:
        The resolved httpx.URL.

    Raises:
        UriBuildError: If base_path is empty or malformed, or a placeholder
            has no matching path variable.
    """
    if not base_path or not base_path.strip():
        raise UriBuildError("Base path must not be empty")

    template = base_path
    if path_variables is not None:
        template = expand_template(base_path, path_variables)

    try:
        url = httpx.URL(template)
    except httpx.InvalidURL as e:
        raise UriBuildError(f"Invalid URI '{template}': {e}") from e

    if query_params is not None:
        for key, value in query_params.items():
            url = url.copy_add_param(key, str(value))

    return url
