from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from orchestration.errors import DeploymentResolutionError, OrchestrationConfigError
from orchestration.models.types import OrchestrationModuleConfig, Prompt, ResourceGroupConfig
from orchestration.services.cancellation import CancellationToken
from orchestration.services.orchestration import OrchestrationClient
from orchestration.services.stream import StreamState
from orchestration.services.transport import HttpTransport, RequestConfig

CONFIG = OrchestrationModuleConfig(
    templating={"template": [{"role": "user", "content": "Capital of {{?country}}?"}]},
    llm={"model_name": "gpt-4o", "model_params": {"max_tokens": 20}},
)
COMPLETION = {
    "request_id": "req-9",
    "module_results": {"templating": [{"role": "user", "content": "Capital of France?"}]},
    "orchestration_result": {
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "Paris"}, "finish_reason": "stop"}],
        "usage": {"completion_tokens": 1, "prompt_tokens": 5, "total_tokens": 6},
    },
}


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _delta(content: str, finish_reason: str | None = None) -> dict:
    choice = {"index": 0, "delta": {"content": content}}
    if finish_reason:
        choice["finish_reason"] = finish_reason
    return {"orchestration_result": {"choices": [choice]}}


class FakeResolver:
    def __init__(self, deployment_id: str = "d-1", error: Exception | None = None) -> None:
        self.deployment_id = deployment_id
        self.error = error
        self.calls = []

    async def resolve(self, scenario_id: str = "orchestration", resource_group: str | None = None) -> str:
        self.calls.append((scenario_id, resource_group))
        if self.error is not None:
            raise self.error
        return self.deployment_id


class FakeSource:
    def __init__(self, chunks) -> None:  # noqa: ANN001
        self._chunks = chunks
        self.close_calls = 0

    def __aiter__(self):  # noqa: ANN204
        return self._iterate()

    async def _iterate(self):  # noqa: ANN202
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        self.close_calls += 1


class FakeTransport:
    def __init__(self, error: Exception | None = None, chunks=None) -> None:  # noqa: ANN001
        self.error = error
        self.chunks = chunks or []
        self.calls = []
        self.source: FakeSource | None = None

    async def execute(self, endpoint, body, request_config=None):  # noqa: ANN001, ANN201
        self.calls.append((endpoint, body, request_config))
        if self.error is not None:
            raise self.error
        return httpx.Response(200, json=COMPLETION)

    async def open_stream(self, endpoint, body, request_config=None):  # noqa: ANN001, ANN201
        self.calls.append((endpoint, body, request_config))
        if self.error is not None:
            raise self.error
        self.source = FakeSource(self.chunks)
        return self.source


def test_chat_completion_resolves_and_wraps_response() -> None:
    transport = FakeTransport()
    resolver = FakeResolver("d-77")
    client = OrchestrationClient(
        CONFIG, ResourceGroupConfig(resource_group="team-a"), transport=transport, deployment_resolver=resolver
    )

    response = _run(client.chat_completion(Prompt(input_params={"country": "France"})))

    assert response.get_content() == "Paris"
    assert response.get_token_usage().total_tokens == 6
    assert resolver.calls == [("orchestration", "team-a")]
    endpoint, body, _ = transport.calls[0]
    assert endpoint.url == "/inference/deployments/d-77/completion"
    assert endpoint.resource_group == "team-a"
    assert body["orchestration_config"]["stream"] is False
    assert body["input_params"] == {"country": "France"}


def test_explicit_deployment_id_skips_resolution() -> None:
    transport = FakeTransport()
    resolver = FakeResolver(error=AssertionError("resolver must not be called"))
    client = OrchestrationClient(
        CONFIG, ResourceGroupConfig(deployment_id="fixed"), transport=transport, deployment_resolver=resolver
    )

    _run(client.chat_completion())

    assert transport.calls[0][0].url == "/inference/deployments/fixed/completion"
    assert resolver.calls == []


def test_resolution_errors_propagate_unchanged() -> None:
    error = DeploymentResolutionError("none running", scenario_id="orchestration", resource_group=None)
    transport = FakeTransport()
    client = OrchestrationClient(CONFIG, transport=transport, deployment_resolver=FakeResolver(error=error))

    with pytest.raises(DeploymentResolutionError) as excinfo:
        _run(client.chat_completion())
    assert excinfo.value is error
    assert transport.calls == []


def test_transport_errors_propagate_unchanged() -> None:
    error = httpx.ConnectError("unreachable")
    client = OrchestrationClient(CONFIG, transport=FakeTransport(error=error), deployment_resolver=FakeResolver())

    with pytest.raises(httpx.ConnectError) as excinfo:
        _run(client.chat_completion())
    assert excinfo.value is error


def test_config_errors_surface_before_any_io() -> None:
    resolver = FakeResolver()
    transport = FakeTransport()
    client = OrchestrationClient(
        {"templating": {"template": [{"role": "user", "content": "hi"}]}},
        transport=transport,
        deployment_resolver=resolver,
    )

    with pytest.raises(OrchestrationConfigError):
        _run(client.chat_completion())
    assert resolver.calls == []
    assert transport.calls == []


def test_create_stream_binds_controller_and_reassembles() -> None:
    transport = FakeTransport(chunks=[_delta("Par"), _delta("is", finish_reason="stop")])
    client = OrchestrationClient(CONFIG, transport=transport, deployment_resolver=FakeResolver())
    controller = CancellationToken()

    async def scenario():
        stream = await client.create_stream(controller, request_config=RequestConfig(headers={"X-Trace": "1"}))
        return await stream.collect()

    stream = _run(scenario())

    _, body, request_config = transport.calls[0]
    assert body["orchestration_config"]["stream"] is True
    assert request_config.cancellation is controller
    assert request_config.headers == {"X-Trace": "1"}
    assert stream.controller is controller
    assert stream.get_content() == "Paris"
    assert stream.state is StreamState.CLOSED
    assert transport.source.close_calls == 1


def test_stream_cancelled_through_controller() -> None:
    transport = FakeTransport(chunks=[_delta("a"), _delta("b"), _delta("c"), _delta("d", finish_reason="stop")])
    client = OrchestrationClient(CONFIG, transport=transport, deployment_resolver=FakeResolver())

    async def scenario():
        stream = await client.stream()
        seen = 0
        async for _ in stream:
            seen += 1
            if seen == 2:
                stream.controller.cancel()
        return stream

    stream = _run(scenario())

    assert stream.state is StreamState.CANCELLED
    assert stream.get_content() == "ab"
    assert transport.source.close_calls == 1


def test_end_to_end_stream_over_http() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/lm/deployments"):
            return httpx.Response(200, json={"count": 1, "resources": [{"id": "d-http"}]})
        events = [json.dumps(_delta("Hello")), json.dumps(_delta(" there", finish_reason="stop")), "[DONE]"]
        body = "".join(f"data: {event}\n\n" for event in events).encode("utf-8")
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    transport = HttpTransport(base_url="https://ai.example.com/v2", auth_token="t", http_transport=httpx.MockTransport(handler))
    client = OrchestrationClient(CONFIG, ResourceGroupConfig(resource_group="rg"), transport=transport)

    async def scenario():
        async with await client.stream(Prompt(input_params={"country": "Peru"})) as stream:
            deltas = [delta async for delta in stream.to_content_stream()]
        return stream, deltas

    stream, deltas = _run(scenario())

    assert deltas == ["Hello", " there"]
    assert stream.get_content() == "Hello there"
    assert stream.is_complete
    completion_request = requests[-1]
    assert completion_request.url.path == "/v2/inference/deployments/d-http/completion"
    assert json.loads(completion_request.content)["orchestration_config"]["stream"] is True
