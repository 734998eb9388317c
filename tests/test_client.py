"""Unit tests for the testing platform API client."""

from __future__ import annotations

import asyncio
import io
import json
import unittest
from email.message import Message
from urllib.error import HTTPError, URLError

from testroom.client import (
    ApiClient,
    ApiError,
    ApiTransportError,
    ClientConfig,
    ClientConfigError,
)


class _FakeResponse:
    def __init__(self, payload: object | bytes) -> None:
        if isinstance(payload, bytes):
            self._body = payload
        else:
            self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


class _FakeOpener:
    def __init__(self, *responses: object) -> None:
        self._responses = list(responses)
        self.requests = []

    def __call__(self, req, timeout=None):
        self.requests.append(req)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return _FakeResponse(response)


def _http_error(status: int, payload: object) -> HTTPError:
    body = io.BytesIO(json.dumps(payload).encode("utf-8"))
    return HTTPError("https://api.example.test/x", status, "error", Message(), body)


class ClientConfigTests(unittest.TestCase):
    def test_from_env_reads_url_and_timeout(self) -> None:
        config = ClientConfig.from_env(
            {"TESTROOM_API_URL": "https://api.example.test/dev/", "TESTROOM_API_TIMEOUT_SECONDS": "5"}
        )
        self.assertEqual(config.base_url, "https://api.example.test/dev")
        self.assertEqual(config.timeout_seconds, 5.0)

    def test_from_env_rejects_missing_url_and_bad_timeout(self) -> None:
        with self.assertRaises(ClientConfigError):
            ClientConfig.from_env({})
        with self.assertRaises(ClientConfigError):
            ClientConfig.from_env({"TESTROOM_API_URL": "https://x", "TESTROOM_API_TIMEOUT_SECONDS": "0"})
        with self.assertRaises(ClientConfigError):
            ClientConfig.from_env({"TESTROOM_API_URL": "https://x", "TESTROOM_API_TIMEOUT_SECONDS": "soon"})


class RequestJsonTests(unittest.TestCase):
    def test_request_sends_auth_header_and_sorted_params(self) -> None:
        opener = _FakeOpener({"success": True})
        client = ApiClient("https://api.example.test/", token="abc", opener=opener)

        payload = client.request_json("GET", "/student/results", params={"b": 2, "a": 1})

        self.assertEqual(payload, {"success": True})
        req = opener.requests[0]
        self.assertEqual(req.full_url, "https://api.example.test/student/results?a=1&b=2")
        self.assertEqual(req.get_header("Authorization"), "Bearer abc")
        self.assertEqual(req.get_method(), "GET")

    def test_post_encodes_json_body(self) -> None:
        opener = _FakeOpener({"success": True})
        client = ApiClient("https://api.example.test", opener=opener)

        client.request_json("POST", "/student-login", body={"studentId": "51706"})

        req = opener.requests[0]
        self.assertEqual(json.loads(req.data.decode("utf-8")), {"studentId": "51706"})
        self.assertEqual(req.get_header("Content-type"), "application/json")
        self.assertIsNone(req.get_header("Authorization"))

    def test_http_error_becomes_api_error_with_code(self) -> None:
        opener = _FakeOpener(
            _http_error(401, {"success": False, "message": "Token expired", "error": "TOKEN_EXPIRED"})
        )
        client = ApiClient("https://api.example.test", opener=opener)

        with self.assertRaises(ApiError) as ctx:
            client.request_json("GET", "/student/active-tests")

        self.assertEqual(ctx.exception.status, 401)
        self.assertEqual(ctx.exception.message, "Token expired")
        self.assertEqual(ctx.exception.code, "TOKEN_EXPIRED")

    def test_network_and_decode_failures_are_transport_errors(self) -> None:
        client = ApiClient("https://api.example.test", opener=_FakeOpener(URLError("refused")))
        with self.assertRaises(ApiTransportError):
            client.request_json("GET", "/health")

        client = ApiClient("https://api.example.test", opener=_FakeOpener(b"<html>"))
        with self.assertRaises(ApiTransportError):
            client.request_json("GET", "/health")

    def test_empty_body_returns_none(self) -> None:
        client = ApiClient("https://api.example.test", opener=_FakeOpener(b""))
        self.assertIsNone(client.request_json("DELETE", "/anti-cheating/input/1"))


class AsyncClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_gets_share_one_request(self) -> None:
        opener = _FakeOpener({"success": True, "tests": [{"test_id": 1}]})
        client = ApiClient("https://api.example.test", token="abc", opener=opener)

        first, second = await asyncio.gather(client.get_active_tests(), client.get_active_tests())

        self.assertEqual(first, [{"test_id": 1}])
        self.assertEqual(second, [{"test_id": 1}])
        self.assertEqual(len(opener.requests), 1)

    async def test_posts_are_never_deduplicated(self) -> None:
        opener = _FakeOpener({"success": True})
        client = ApiClient("https://api.example.test", token="abc", opener=opener)
        events = [{"state": "hidden", "at": 0}, {"state": "visible", "at": 12000}]

        await client.report_visibility_events("input", 3, events)
        await client.report_visibility_events("input", 3, events)

        self.assertEqual(len(opener.requests), 2)
        self.assertEqual(opener.requests[0].full_url, "https://api.example.test/anti-cheating/input/3/events")
        self.assertEqual(json.loads(opener.requests[0].data.decode("utf-8")), {"events": events})

    async def test_login_sets_token_and_drops_cached_reads(self) -> None:
        opener = _FakeOpener(
            {"success": True, "tests": []},
            {"success": True, "accessToken": "fresh", "refreshToken": "r"},
            {"success": True, "tests": [{"test_id": 2}]},
        )
        client = ApiClient("https://api.example.test", opener=opener)

        self.assertEqual(await client.get_active_tests(), [])
        await client.login_student("51706", "pw")
        tests = await client.get_active_tests()

        self.assertEqual(client.token, "fresh")
        self.assertEqual(tests, [{"test_id": 2}])
        self.assertEqual(opener.requests[2].get_header("Authorization"), "Bearer fresh")

    async def test_login_without_token_is_rejected(self) -> None:
        client = ApiClient("https://api.example.test", opener=_FakeOpener({"success": True}))
        with self.assertRaises(ApiTransportError):
            await client.login_student("51706", "pw")
        self.assertIsNone(client.token)


if __name__ == "__main__":
    unittest.main()
