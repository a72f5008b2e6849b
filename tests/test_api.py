"""End-to-end tests of the HTTP surface against a mocked upstream."""

import json
from collections.abc import Callable, Generator

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.conftest import TEST_API_KEY
from tests.helpers import frame, parse_chunks, sse
from zproxy.api.app import create_app
from zproxy.config.settings import Settings


AUTH = {"Authorization": f"Bearer {TEST_API_KEY}"}

UpstreamHandler = Callable[[httpx.Request], httpx.Response]


class MockUpstream:
    """Records upstream requests and answers with a configurable handler."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: UpstreamHandler = lambda request: httpx.Response(
            200, content=sse(frame(phase="answer", delta="ok", done=True))
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def respond_with(self, *payloads, status_code: int = 200) -> None:
        body = sse(*payloads)
        self.handler = lambda request: httpx.Response(status_code, content=body)


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def make_client(
    upstream: MockUpstream,
) -> Generator[Callable[[Settings], TestClient], None, None]:
    clients: list[TestClient] = []

    def factory(settings: Settings) -> TestClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        client = TestClient(create_app(settings, http_client=http_client))
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, test_settings) -> TestClient:
    return make_client(test_settings)


def chat(client: TestClient, headers=AUTH, **body) -> httpx.Response:
    body.setdefault("model", "GLM-4.5")
    body.setdefault("messages", [{"role": "user", "content": "hi"}])
    return client.post("/v1/chat/completions", json=body, headers=headers)


@pytest.mark.integration
class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "OpenAI Compatible API Server"}

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "pass"
        assert data["service"] == "zproxy"

    def test_models(self, client):
        data = client.get("/v1/models").json()

        assert data["object"] == "list"
        assert [model["id"] for model in data["data"]] == [
            "GLM-4.5",
            "GLM-4.5-Thinking",
            "GLM-4.5-Search",
            "GLM-4.5-Air",
        ]
        assert all(model["object"] == "model" for model in data["data"])
        assert all(model["owned_by"] == "z.ai" for model in data["data"])

    def test_unknown_route_is_openai_error(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "http_error"


@pytest.mark.integration
class TestAuthentication:
    def test_missing_header(self, client, upstream):
        response = chat(client, headers={})

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["type"] == "authentication_error"
        assert error["message"] == "Missing or invalid Authorization header"
        assert upstream.requests == []

    def test_wrong_key(self, client):
        response = chat(client, headers={"Authorization": "Bearer sk-wrong"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid API key"

    def test_skip_auth(self, make_client, test_settings):
        test_settings.security.skip_auth_token = True
        response = chat(make_client(test_settings), headers={})
        assert response.status_code == 200


@pytest.mark.integration
class TestValidation:
    def test_missing_messages(self, client):
        response = client.post(
            "/v1/chat/completions", json={"model": "GLM-4.5"}, headers=AUTH
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "invalid_request_error"
        assert error["message"].startswith("messages")

    def test_empty_messages(self, client):
        response = chat(client, messages=[])
        assert response.status_code == 400

    def test_unsupported_role(self, client, upstream):
        response = chat(client, messages=[{"role": "narrator", "content": "x"}])

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"
        assert upstream.requests == []


@pytest.mark.integration
class TestNonStreaming:
    def test_completion(self, client, upstream):
        upstream.respond_with(
            frame(phase="thinking", delta="<details><summary>s</summary>plan</details>"),
            frame(phase="answer", delta="Hello"),
            frame(phase="answer", delta=" there", done=True),
        )

        response = chat(client)

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["id"].startswith("chatcmpl-")
        assert data["model"] == "GLM-4.5"
        assert data["choices"][0]["message"] == {
            "role": "assistant",
            "content": "<span>plan</span>Hello there",
            "tool_calls": None,
        }
        assert data["choices"][0]["finish_reason"] == "stop"

        sent = upstream.requests[0]
        assert sent.headers["authorization"] == "Bearer backup-token"
        body = json.loads(sent.content)
        assert body["stream"] is True
        assert body["model"] == "0727-360B-API"

    def test_tool_call_completion(self, client, upstream):
        payload = json.dumps(
            {"tool_calls": [{"function": {"name": "lookup", "arguments": {"id": 7}}}]}
        )
        upstream.respond_with(frame(phase="answer", delta=payload, done=True))
        tools = [{"type": "function", "function": {"name": "lookup"}}]

        data = chat(client, tools=tools).json()

        message = data["choices"][0]["message"]
        assert message["content"] is None
        assert message["tool_calls"][0]["function"] == {
            "name": "lookup",
            "arguments": '{"id":7}',
        }
        assert data["choices"][0]["finish_reason"] == "tool_calls"

        system = json.loads(upstream.requests[0].content)["messages"][0]
        assert system["role"] == "system"
        assert "lookup" in system["content"]

    def test_upstream_failure_is_bad_gateway(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(500, text="boom")

        response = chat(client)

        assert response.status_code == 502
        assert response.json()["error"]["type"] == "upstream_error"


@pytest.mark.integration
class TestStreaming:
    def test_stream(self, client, upstream):
        upstream.respond_with(
            frame(phase="thinking", delta="<details>plan</details>"),
            frame(phase="answer", delta="Hi", done=True),
        )

        response = chat(client, stream=True)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        parsed = parse_chunks(
            [f"{event}\n\n" for event in response.text.split("\n\n") if event]
        )
        deltas = [chunk["choices"][0]["delta"] for chunk in parsed[:-1]]
        assert deltas == [
            {"role": "assistant"},
            {"reasoning_content": "<span>plan</span>"},
            {"content": "Hi"},
            {},
        ]
        assert parsed[-2]["choices"][0]["finish_reason"] == "stop"
        assert parsed[-1] == "[DONE]"

    def test_upstream_failure_becomes_error_event(self, client, upstream):
        upstream.handler = lambda request: httpx.Response(503, text="down")

        response = chat(client, stream=True)

        assert response.status_code == 200
        events = response.text.strip().split("\n\n")
        assert json.loads(events[0][len("data: ") :])["error"]["type"] == "upstream_error"
        assert events[-1] == "data: [DONE]"
