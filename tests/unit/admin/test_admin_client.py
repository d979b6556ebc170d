"""Unit tests for AdminClient against a mocked admin backend."""

from __future__ import annotations

import json
import uuid

import httpx
import pytest

from autotest_agent.admin.client import (
    AdminClient,
    BearerAuth,
    describe_error,
    ensure_protocol,
    is_successful,
)
from autotest_agent.core.errors import (
    AdminConnectionError,
    AdminError,
    AuthenticationFailed,
    MissingTarget,
    SessionActionError,
)


def _client(admin, **kwargs) -> AdminClient:
    kwargs.setdefault("agent_id", "petclinic")
    return AdminClient("localhost:8090", transport=admin.transport, **kwargs)


class TestEnsureProtocol:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("localhost:8090", "http://localhost:8090"),
            ("http://localhost:8090", "http://localhost:8090"),
            ("https://admin.example.com", "https://admin.example.com"),
            ("10.0.0.5", "http://10.0.0.5"),
        ],
    )
    def test_ensure_protocol(self, url: str, expected: str) -> None:
        assert ensure_protocol(url) == expected


class TestResponseValidation:
    def test_single_object(self) -> None:
        assert is_successful({"code": 200})
        assert not is_successful({"code": 404})
        assert not is_successful({})

    def test_array_needs_one_success(self) -> None:
        assert is_successful([{"code": 500}, {"code": 200}])
        assert not is_successful([{"code": 500}, {"code": 404}])
        assert not is_successful([])

    def test_other_shapes_fail(self) -> None:
        assert not is_successful(None)
        assert not is_successful("ok")
        assert not is_successful(200)

    @pytest.mark.parametrize(
        "status, body, expected",
        [
            (400, None, "bad request"),
            (500, None, "internal server error"),
            (418, None, "unexpected error"),
            (404, {"code": 404, "message": "session not found"}, "session not found"),
            (400, {"message": ""}, "bad request"),
        ],
    )
    def test_describe_error(self, status: int, body, expected: str) -> None:
        response = httpx.Response(status, json=body) if body is not None else httpx.Response(status)
        assert describe_error(response) == expected


class TestTarget:
    def test_agent_route(self, admin) -> None:
        client = _client(admin)
        assert client.route == "/agents/petclinic/plugins/test2code/dispatch-action"

    def test_group_route(self, admin) -> None:
        client = AdminClient("localhost:8090", group_id="shop", transport=admin.transport)
        assert client.route == "/service-groups/shop/plugins/test2code/dispatch-action"

    def test_missing_target(self, admin) -> None:
        with pytest.raises(MissingTarget):
            AdminClient("localhost:8090", transport=admin.transport)

    def test_both_targets(self, admin) -> None:
        with pytest.raises(MissingTarget):
            AdminClient("localhost:8090", agent_id="a", group_id="g", transport=admin.transport)

    def test_base_url(self, admin) -> None:
        assert _client(admin).base_url == "http://localhost:8090/api"
        client = AdminClient("https://admin.example.com/", agent_id="a")
        assert client.base_url == "https://admin.example.com/api"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_then_bearer_on_every_request(self, admin) -> None:
        async with _client(admin) as client:
            assert client.is_authenticated
            await client.start_session()

        login, start = admin.requests
        assert login.method == "POST"
        assert str(login.url) == "http://localhost:8090/api/login"
        assert "authorization" not in login.headers
        assert str(start.url) == (
            "http://localhost:8090/api/agents/petclinic/plugins/test2code/dispatch-action"
        )
        assert start.headers["Authorization"] == "Bearer secret-token"

    @pytest.mark.asyncio
    async def test_missing_token_fails_without_further_requests(self, admin) -> None:
        admin.token = None
        client = _client(admin)

        with pytest.raises(AuthenticationFailed):
            await client.connect()

        assert len(admin.requests) == 1
        assert not client.is_authenticated
        with pytest.raises(AdminError):
            await client.start_session()
        assert len(admin.requests) == 1

    @pytest.mark.asyncio
    async def test_rejected_login(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "invalid credentials"})

        client = AdminClient("localhost", agent_id="a", transport=httpx.MockTransport(handler))
        with pytest.raises(AuthenticationFailed) as exc_info:
            await client.connect()
        assert "invalid credentials" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unreachable_backend(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = AdminClient("localhost", agent_id="a", transport=httpx.MockTransport(handler))
        with pytest.raises(AdminConnectionError):
            await client.connect()

    @pytest.mark.asyncio
    async def test_tokens_are_scoped_per_client(self) -> None:
        seen: list[tuple[str, str | None]] = []

        def make_handler(token: str):
            def handler(request: httpx.Request) -> httpx.Response:
                if request.url.path.endswith("/login"):
                    return httpx.Response(200, headers={"Authorization": token})
                seen.append((token, request.headers.get("Authorization")))
                return httpx.Response(200, json={"code": 200})

            return handler

        first = AdminClient("h1", agent_id="a", transport=httpx.MockTransport(make_handler("t1")))
        second = AdminClient("h2", agent_id="b", transport=httpx.MockTransport(make_handler("t2")))
        async with first, second:
            await first.start_session()
            await second.start_session()

        assert seen == [("t1", "Bearer t1"), ("t2", "Bearer t2")]

    def test_bearer_auth_sets_header(self) -> None:
        request = httpx.Request("POST", "http://h/api/x")
        flow = BearerAuth("tok").auth_flow(request)
        assert next(flow).headers["Authorization"] == "Bearer tok"


class TestSessionActions:
    @pytest.mark.asyncio
    async def test_start_session_payload(self, admin) -> None:
        async with _client(admin) as client:
            session_id = await client.start_session()

        uuid.UUID(session_id)
        assert admin.actions == [
            {
                "type": "START",
                "payload": {"sessionId": session_id, "testType": "AUTO", "isRealtime": True},
            }
        ]

    @pytest.mark.asyncio
    async def test_start_session_ids_are_unique(self, admin) -> None:
        async with _client(admin) as client:
            ids = {await client.start_session() for _ in range(3)}
        assert len(ids) == 3

    @pytest.mark.asyncio
    async def test_stop_session_payload(self, admin) -> None:
        async with _client(admin) as client:
            await client.stop_session("s-1")

        assert admin.actions == [{"type": "STOP", "payload": {"sessionId": "s-1"}}]
        stop_request = admin.requests[-1]
        assert json.loads(stop_request.content)["type"] == "STOP"

    @pytest.mark.asyncio
    async def test_single_object_failure(self, admin) -> None:
        admin.responses["START"] = (200, {"code": 409, "message": "session already exists"})
        async with _client(admin) as client:
            with pytest.raises(SessionActionError) as exc_info:
                await client.start_session()

        assert exc_info.value.message == "session already exists"
        assert exc_info.value.session_id == admin.actions[0]["payload"]["sessionId"]

    @pytest.mark.asyncio
    async def test_single_object_failure_without_message(self, admin) -> None:
        admin.responses["STOP"] = (200, {"code": 500})
        async with _client(admin) as client:
            with pytest.raises(SessionActionError) as exc_info:
                await client.stop_session("s-2")

        assert exc_info.value.message == "unexpected error"
        assert exc_info.value.session_id == "s-2"

    @pytest.mark.asyncio
    async def test_group_array_with_one_success(self, admin) -> None:
        admin.responses["START"] = (200, [{"code": 500, "message": "agent offline"}, {"code": 200}])
        async with _client(admin, agent_id=None, group_id="shop") as client:
            session_id = await client.start_session()

        assert session_id
        assert admin.requests[-1].url.path == (
            "/api/service-groups/shop/plugins/test2code/dispatch-action"
        )

    @pytest.mark.asyncio
    async def test_group_array_without_success(self, admin) -> None:
        admin.responses["STOP"] = (200, [{"code": 500, "message": "agent offline"}, {"code": 404}])
        async with _client(admin, agent_id=None, group_id="shop") as client:
            with pytest.raises(SessionActionError) as exc_info:
                await client.stop_session("s-3")

        assert exc_info.value.message == "agent offline"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, body, message",
        [
            (400, {}, "bad request"),
            (500, {}, "internal server error"),
            (503, {}, "unexpected error"),
            (404, {"code": 404, "message": "Active session 's-4' not found"}, "Active session 's-4' not found"),
        ],
    )
    async def test_http_errors(self, admin, status: int, body, message: str) -> None:
        admin.responses["STOP"] = (status, body)
        async with _client(admin) as client:
            with pytest.raises(SessionActionError) as exc_info:
                await client.stop_session("s-4")

        assert exc_info.value.message == message
        assert exc_info.value.session_id == "s-4"
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_non_json_body_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/login"):
                return httpx.Response(200, headers={"Authorization": "t"})
            return httpx.Response(200, text="<html>gateway</html>")

        async with AdminClient("h", agent_id="a", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(SessionActionError) as exc_info:
                await client.stop_session("s-5")
        assert exc_info.value.message == "unexpected error"

    @pytest.mark.asyncio
    async def test_close_discards_token(self, admin) -> None:
        client = _client(admin)
        await client.connect()
        await client.close()

        assert not client.is_authenticated
        with pytest.raises(AdminError):
            await client.stop_session("s-6")
