"""
SeqClient: JSON HTTP transport for the Seq server API.

- One method: `execute(method, path, body=None)` returning parsed JSON (or None).
- `X-Seq-ApiKey` header when an API key is configured; omitted otherwise.
- Non-2xx responses raise HttpError (NotFoundError for 404).
- Connection failures, timeouts and undecodable bodies raise TransportError.
- No retries: retry policy belongs to the caller.

Usage:
    client = SeqClient("https://seq.example", api_key="...", timeout_sec=10)
    keys = client.execute("GET", "/api/apikeys")
"""

from __future__ import annotations

import json
import logging
import time
from http import HTTPStatus
from typing import Any, Dict, Optional, Union

import requests

API_KEY_HEADER = "X-Seq-ApiKey"

JSON = Union[Dict[str, Any], list, str, int, float, bool, None]

_LOG_PREVIEW = 600
_REDACT_KEYS = {"token", "apikey", "api_key", "x-seq-apikey", "authorization", "password"}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: ("***REDACTED***" if str(k).lower() in _REDACT_KEYS else _redact(v))
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        s = json.dumps(_redact(obj), ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        s = f"<unserializable:{type(obj).__name__}>"
    return s[:limit]


class SeqError(Exception):
    """Base class for errors talking to Seq."""


class TransportError(SeqError):
    """Connection, timeout or (de)serialization failure. Always terminal."""

    def __init__(self, message: str, *, method: str = "", url: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.method = method
        self.url = url

    def __str__(self) -> str:
        if self.method and self.url:
            return f"{self.method} {self.url}: {self.message}"
        return self.message


class HttpError(SeqError):
    """Non-2xx response. `message` is the trimmed body, or the status text when empty."""

    def __init__(self, status_code: int, message: str, *, method: str = "", url: str = "") -> None:
        super().__init__(message)
        self.status_code = int(status_code)
        self.message = message
        self.method = method
        self.url = url

    def __str__(self) -> str:
        prefix = f"{self.method} {self.url}: " if self.method and self.url else ""
        return f"{prefix}{self.status_code}: {self.message}"


class NotFoundError(HttpError):
    """404 from the server."""


def _status_text(status: int, reason: Optional[str]) -> str:
    if reason:
        return f"{status} {reason}"
    try:
        return f"{status} {HTTPStatus(status).phrase}"
    except ValueError:
        return str(status)


class SeqClient:
    """Minimal JSON client for the Seq HTTP API."""

    def __init__(
        self,
        server_url: str,
        api_key: str = "",
        *,
        verify_tls: bool = True,
        timeout_sec: float = 30,
        session: Optional[requests.Session] = None,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        if not server_url:
            raise ValueError("server_url is required")
        self.server_url = server_url.rstrip("/")
        self.api_key = (api_key or "").strip()
        self.verify_tls = verify_tls
        self.timeout = float(timeout_sec)
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "seqsync/HTTPClient",
        })
        self.log = logger or logging.getLogger("seqsync.http")

    @property
    def authenticated(self) -> bool:
        return bool(self.api_key)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.server_url}/{path.lstrip('/')}"

    def execute(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> JSON:
        """Send one request and return the decoded JSON body (None when the body is empty).

        Raises:
            HttpError: status outside 200..299 (NotFoundError for 404).
            TransportError: network failure, timeout, or body (de)serialization failure.
        """
        method = method.upper()
        url = self._url(path)

        headers: Dict[str, str] = {}
        data: Optional[bytes] = None
        if body is not None:
            try:
                data = json.dumps(body).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise TransportError(f"cannot encode request body: {exc}", method=method, url=url) from exc
            headers["Content-Type"] = "application/json"
            self.log.debug("%s %s payload=%s", method, path, _short_json(body))
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key

        start = time.monotonic()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                data=data,
                headers=headers,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.Timeout as exc:
            self.log.warning("%s %s timed out after %.1fs", method, path, self.timeout)
            raise TransportError(f"timed out: {exc}", method=method, url=url) from exc
        except requests.RequestException as exc:
            self.log.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(str(exc), method=method, url=url) from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        status = resp.status_code
        raw = resp.content or b""

        if status < 200 or status > 299:
            message = raw.decode("utf-8", errors="replace").strip() or _status_text(status, resp.reason)
            self.log.debug("%s %s -> %s in %.1fms: %s", method, path, status, elapsed_ms, message[:200])
            err_cls = NotFoundError if status == 404 else HttpError
            raise err_cls(status, message, method=method, url=url)

        self.log.debug("%s %s -> %s in %.1fms", method, path, status, elapsed_ms)
        if not raw.strip():
            return None
        try:
            out = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransportError(f"invalid JSON response: {exc}", method=method, url=url) from exc
        self.log.debug("%s %s response=%s", method, path, _short_json(out))
        return out

    def close(self) -> None:
        self.session.close()
