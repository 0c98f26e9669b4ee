"""Helper for interacting with the Supabase REST and storage APIs."""
from __future__ import annotations

import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode, urlsplit
from urllib.request import Request, urlopen

from flask import current_app

__all__ = [
    "SupabaseError",
    "SupabaseConfigurationError",
    "SupabaseRequestError",
    "select_rows",
    "select_one",
    "insert_row",
    "update_rows",
    "upload_object",
    "public_object_url",
    "create_signed_url",
    "extract_object_path",
]


class SupabaseError(Exception):
    """Base exception for Supabase related errors."""


class SupabaseConfigurationError(SupabaseError):
    """Raised when required Supabase configuration is missing."""


class SupabaseRequestError(SupabaseError):
    """Raised when a Supabase API call fails."""


def _base_url() -> str:
    base_url: str | None = current_app.config.get("SUPABASE_URL")
    if not base_url:
        raise SupabaseConfigurationError(
            "Supabase configuration is incomplete; set SUPABASE_URL and SUPABASE_KEY"
        )
    return base_url.rstrip("/")


def _bucket() -> str:
    return current_app.config.get("SUPABASE_STORAGE_BUCKET", "defect-images")


def _build_request(
    path: str,
    *,
    method: str = "GET",
    body: bytes | None = None,
    headers: dict[str, str] | None = None,
) -> Request:
    """Return a configured :class:`urllib.request.Request` for ``path``."""

    base_url = _base_url()
    api_key: str | None = current_app.config.get("SUPABASE_KEY")

    if not api_key:
        raise SupabaseConfigurationError(
            "Supabase configuration is incomplete; set SUPABASE_URL and SUPABASE_KEY"
        )

    url = f"{base_url}/{path.lstrip('/')}"
    request_headers = {
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
        "User-Agent": "linedefect/1.0",
    }
    if headers:
        request_headers.update(headers)

    return Request(url, data=body, headers=request_headers, method=method)


def _execute(request: Request) -> Any:
    """Execute ``request`` and return the decoded JSON payload (``None`` if empty)."""

    timeout: int = current_app.config.get("SUPABASE_TIMEOUT", 10)

    try:
        with urlopen(request, timeout=timeout) as response:  # noqa: S310 (trusted URL)
            payload = response.read()
    except HTTPError as exc:  # pragma: no cover - exercised via integration tests
        detail = ""
        if exc.fp is not None:
            try:
                detail = exc.fp.read().decode("utf-8")
            except (OSError, UnicodeDecodeError):
                detail = ""
        raise SupabaseRequestError(f"HTTP {exc.code}: {detail or exc.reason}") from exc
    except URLError as exc:  # pragma: no cover - network failure
        raise SupabaseRequestError(str(exc.reason)) from exc

    if not payload:
        return None

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise SupabaseRequestError("Supabase response could not be decoded as JSON") from exc


def _json_body(values: dict[str, Any]) -> bytes:
    return json.dumps(values, default=str).encode("utf-8")


def _rest_path(table: str, params: dict[str, str]) -> str:
    query = urlencode(params, safe=",.*()")
    return f"rest/v1/{table}?{query}" if query else f"rest/v1/{table}"


def _filter_params(filters: dict[str, Any] | None) -> dict[str, str]:
    return {column: f"eq.{value}" for column, value in (filters or {}).items()}


def _expect_rows(payload: Any, table: str) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise SupabaseRequestError(f"Unexpected Supabase response shape for {table} table")
    return [row for row in payload if isinstance(row, dict)]


def select_rows(
    table: str,
    filters: dict[str, Any] | None = None,
    *,
    columns: str = "*",
    order: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Return rows of ``table`` matching every ``column == value`` in ``filters``."""

    params = {"select": columns, **_filter_params(filters)}
    if order:
        params["order"] = order
    if limit is not None:
        params["limit"] = str(limit)

    request = _build_request(_rest_path(table, params))
    return _expect_rows(_execute(request), table)


def select_one(table: str, filters: dict[str, Any]) -> dict[str, Any] | None:
    """Return the single matching row, ``None`` when absent."""

    rows = select_rows(table, filters, limit=2)
    if len(rows) > 1:
        raise SupabaseRequestError(f"Expected at most one {table} row for {filters!r}")
    return rows[0] if rows else None


def insert_row(table: str, values: dict[str, Any]) -> dict[str, Any]:
    """Insert ``values`` into ``table`` and return the stored row."""

    request = _build_request(
        _rest_path(table, {}),
        method="POST",
        body=_json_body(values),
        headers={"Content-Type": "application/json", "Prefer": "return=representation"},
    )
    rows = _expect_rows(_execute(request), table)
    if not rows:
        raise SupabaseRequestError(f"Supabase did not return the inserted {table} row")
    return rows[0]


def update_rows(
    table: str, filters: dict[str, Any], values: dict[str, Any]
) -> list[dict[str, Any]]:
    """Apply ``values`` to rows of ``table`` matching ``filters``."""

    if not filters:
        raise SupabaseRequestError("Refusing to update without a filter")

    request = _build_request(
        _rest_path(table, _filter_params(filters)),
        method="PATCH",
        body=_json_body(values),
        headers={"Content-Type": "application/json", "Prefer": "return=representation"},
    )
    return _expect_rows(_execute(request), table)


def _object_path(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")


def upload_object(path: str, content: bytes, content_type: str) -> str:
    """Store ``content`` in the defect image bucket and return its object path."""

    request = _build_request(
        f"storage/v1/object/{_bucket()}/{_object_path(path)}",
        method="POST",
        body=content,
        headers={"Content-Type": content_type or "application/octet-stream"},
    )
    _execute(request)
    return path


def public_object_url(path: str) -> str:
    """Return the permanent public URL for ``path``."""

    return f"{_base_url()}/storage/v1/object/public/{_bucket()}/{_object_path(path)}"


def create_signed_url(path: str, expires_in: int) -> str:
    """Return a URL for ``path`` that stops working after ``expires_in`` seconds."""

    request = _build_request(
        f"storage/v1/object/sign/{_bucket()}/{_object_path(path)}",
        method="POST",
        body=_json_body({"expiresIn": expires_in}),
        headers={"Content-Type": "application/json"},
    )
    payload = _execute(request)
    signed = payload.get("signedURL") if isinstance(payload, dict) else None
    if not signed:
        raise SupabaseRequestError("Supabase did not return a signed URL")
    if signed.startswith("http"):
        return signed
    return f"{_base_url()}/storage/v1/{signed.lstrip('/')}"


def extract_object_path(url_or_path: str | None, bucket: str | None = None) -> str | None:
    """Return the object path inside ``bucket`` for a stored path or full URL."""

    if not url_or_path:
        return None
    if not url_or_path.startswith("http"):
        return url_or_path

    bucket = bucket or _bucket()
    path = urlsplit(url_or_path).path
    marker = f"/{bucket}/"
    if marker in path:
        return path.split(marker, 1)[1]
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None
