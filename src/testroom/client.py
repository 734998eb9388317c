"""JSON API client for the testing platform with deduplicated reads."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from testroom.dedup import RequestDeduplicator

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 20.0
_USER_AGENT = "testroom-client/1.0"


class ClientConfigError(ValueError):
    """Raised when client settings are missing or invalid."""


class ApiError(RuntimeError):
    """Raised when the API answers with a non-success status."""

    def __init__(self, status: int, message: str, code: str | None = None) -> None:
        super().__init__(f"api request failed ({status}): {message}")
        self.status = status
        self.code = code
        self.message = message


class ApiTransportError(RuntimeError):
    """Raised when the API cannot be reached or returns malformed JSON."""


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ClientConfig":
        source = os.environ if env is None else env
        base_url = source.get("TESTROOM_API_URL", "").strip().rstrip("/")
        if not base_url:
            raise ClientConfigError("TESTROOM_API_URL is required")

        raw_timeout = source.get("TESTROOM_API_TIMEOUT_SECONDS", "").strip()
        try:
            timeout = float(raw_timeout) if raw_timeout else _DEFAULT_TIMEOUT_SECONDS
        except ValueError as exc:
            raise ClientConfigError("TESTROOM_API_TIMEOUT_SECONDS must be a number") from exc
        if timeout <= 0:
            raise ClientConfigError("TESTROOM_API_TIMEOUT_SECONDS must be > 0")
        return cls(base_url=base_url, timeout_seconds=timeout)


def _decode_error(exc: HTTPError) -> ApiError:
    detail = exc.read().decode("utf-8", errors="ignore") if exc.fp is not None else ""
    try:
        payload = json.loads(detail) if detail else {}
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    message = payload.get("message") or payload.get("error") or detail or str(exc.reason)
    code = payload.get("error") if payload.get("message") else None
    return ApiError(exc.code, str(message), code if isinstance(code, str) else None)


class ApiClient:
    """Blocking urllib transport wrapped in coroutines for the attempt workflow."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        deduplicator: RequestDeduplicator | None = None,
        opener: Callable[..., Any] = urlopen,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.token = token
        self.deduplicator = deduplicator or RequestDeduplicator()
        self._opener = opener
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs: Any) -> "ApiClient":
        return cls(config.base_url, timeout_seconds=config.timeout_seconds, **kwargs)

    def _url(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            url = f"{url}?{urlencode(sorted((key, str(value)) for key, value in params.items()))}"
        return url

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> Any:
        url = self._url(path, params)
        headers = {"Accept": "application/json", "User-Agent": _USER_AGENT}
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        logger.debug("%s %s", method.upper(), url)
        req = Request(url=url, data=data, headers=headers, method=method.upper())
        try:
            with self._opener(req, timeout=self._timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            raise _decode_error(exc) from exc
        except URLError as exc:
            raise ApiTransportError(f"api request failed for {url}: {exc.reason}") from exc

        try:
            return json.loads(raw) if raw else None
        except json.JSONDecodeError as exc:
            raise ApiTransportError(f"api response was not valid JSON for {url}") from exc

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET through the deduplicator so identical concurrent reads share one request."""

        async def thunk() -> Any:
            return await asyncio.to_thread(self.request_json, "GET", path, params=params)

        return await self.deduplicator.deduplicate("GET", path, params, thunk)

    async def post(self, path: str, body: Mapping[str, Any]) -> Any:
        return await asyncio.to_thread(self.request_json, "POST", path, body=body)

    async def login_student(self, student_id: str, password: str) -> dict[str, Any]:
        payload = await self.post("/student-login", {"studentId": student_id, "password": password})
        token = payload.get("accessToken") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise ApiTransportError("login response did not include an access token")
        self.token = token
        # Cached reads belong to the previous identity.
        self.deduplicator.clear_cache()
        return payload

    async def get_active_tests(self) -> list[dict[str, Any]]:
        payload = await self.get("/student/active-tests")
        return list(payload.get("tests") or []) if isinstance(payload, dict) else []

    async def get_test_questions(self, test_type: str, test_id: str | int) -> dict[str, Any]:
        return await self.get(f"/tests/{quote(test_type)}/{quote(str(test_id))}/questions")

    async def submit_test(self, test_type: str, test_id: str | int, submission: Mapping[str, Any]) -> dict[str, Any]:
        return await self.post(f"/tests/{quote(test_type)}/{quote(str(test_id))}/submit", submission)

    async def report_visibility_events(
        self,
        test_type: str,
        test_id: str | int,
        events: list[Mapping[str, Any]],
    ) -> dict[str, Any]:
        return await self.post(
            f"/anti-cheating/{quote(test_type)}/{quote(str(test_id))}/events",
            {"events": list(events)},
        )
