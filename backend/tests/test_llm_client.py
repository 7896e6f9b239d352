"""
Tests for the HTTP-facing service clients: reasoning model, embeddings and
vector index. Upstreams are replaced with httpx.MockTransport or mocks.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from errors import ErrorCode, ExternalServiceError, LLMError
from services.embeddings import EmbeddingClient
from services.llm_client import FastClassifierClient, ReasoningClient, is_retryable_error
from services.vector_index import VectorIndex

OK_BODY = {
    "model": "test-model",
    "stop_reason": "tool_use",
    "content": [
        {"type": "text", "text": "Working on it. "},
        {"type": "tool_use", "id": "toolu_1", "name": "create_plan", "input": {"intent": "x"}},
    ],
}


class Upstream:
    """Scripted MockTransport handler recording request bodies."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(upstream, **kwargs):
    return ReasoningClient(api_key="k", transport=httpx.MockTransport(upstream), retry_delay=0, **kwargs)


def call(client, **kwargs):
    async def scenario():
        try:
            return await client.create_message(
                system_prompt="sys", messages=[{"role": "user", "content": "hi"}], **kwargs
            )
        finally:
            await client.aclose()

    return asyncio.run(scenario())


class TestReasoningClient:
    def test_parses_blocks(self):
        upstream = Upstream(httpx.Response(200, json=OK_BODY))
        reply = call(make_client(upstream), forced_tool="create_plan", tools=[{"name": "create_plan"}])

        assert reply.text == "Working on it. "
        assert reply.find_tool_use("create_plan")["input"] == {"intent": "x"}
        assert reply.stop_reason == "tool_use"

        sent = json.loads(upstream.requests[0].content)
        assert sent["system"] == "sys"
        assert sent["tool_choice"] == {"type": "tool", "name": "create_plan"}
        assert upstream.requests[0].headers["x-api-key"] == "k"
        assert upstream.requests[0].url.path == "/v1/messages"

    def test_no_tools_omits_tool_fields(self):
        upstream = Upstream(httpx.Response(200, json=OK_BODY))
        call(make_client(upstream))
        sent = json.loads(upstream.requests[0].content)
        assert "tools" not in sent
        assert "tool_choice" not in sent

    def test_overload_retried_then_succeeds(self):
        upstream = Upstream(httpx.Response(529, text="overloaded"), httpx.Response(200, json=OK_BODY))
        reply = call(make_client(upstream))
        assert len(upstream.requests) == 2
        assert reply.tool_uses

    def test_retries_exhausted(self):
        upstream = Upstream(httpx.Response(529, text="overloaded"))
        with pytest.raises(LLMError) as exc:
            call(make_client(upstream, retry_max=2))
        assert len(upstream.requests) == 3
        assert exc.value.code == ErrorCode.LLM_RATE_LIMITED

    def test_client_error_not_retried(self):
        """A 400 carries status and body and is raised immediately."""
        upstream = Upstream(httpx.Response(400, text='{"error": "bad tool schema"}'))
        with pytest.raises(LLMError) as exc:
            call(make_client(upstream))
        assert len(upstream.requests) == 1
        assert exc.value.status_code == 400
        assert "bad tool schema" in exc.value.body_text
        assert exc.value.code == ErrorCode.LLM_HTTP_ERROR

    def test_timeout(self):
        upstream = Upstream(httpx.ReadTimeout("slow"))
        with pytest.raises(LLMError) as exc:
            call(make_client(upstream))
        assert exc.value.code == ErrorCode.LLM_TIMEOUT

    def test_non_json_body(self):
        upstream = Upstream(httpx.Response(200, text="<html>"))
        with pytest.raises(LLMError) as exc:
            call(make_client(upstream))
        assert exc.value.code == ErrorCode.LLM_RESPONSE_INVALID

    def test_retryable_classification(self):
        assert is_retryable_error(LLMError("x", status_code=503))
        assert not is_retryable_error(LLMError("x", status_code=401))
        assert is_retryable_error(httpx.ConnectError("refused"))
        assert not is_retryable_error(ValueError("x"))


class TestFastClassifierClient:
    def test_disabled_without_key(self):
        assert FastClassifierClient.from_config(SimpleNamespace(classifier_api_key="")) is None


class TestEmbeddingClient:
    def test_embed(self):
        upstream = Upstream(httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2]}]}))
        client = EmbeddingClient(api_key="v", transport=httpx.MockTransport(upstream))
        assert asyncio.run(client.embed("hello")) == [0.1, 0.2]
        sent = json.loads(upstream.requests[0].content)
        assert sent["input"] == ["hello"]
        assert sent["input_type"] == "query"

    def test_upstream_error(self):
        upstream = Upstream(httpx.Response(502, text="bad gateway"))
        client = EmbeddingClient(api_key="v", transport=httpx.MockTransport(upstream))
        with pytest.raises(ExternalServiceError) as exc:
            asyncio.run(client.embed("hello"))
        assert exc.value.code == ErrorCode.EXTERNAL_EMBEDDING_FAILED

    def test_disabled_without_key(self):
        assert EmbeddingClient.from_config(SimpleNamespace(voyage_api_key="")) is None


class TestVectorIndex:
    def make_index(self, points=None, error=None, min_score=0.0):
        client = AsyncMock()
        if error:
            client.query_points.side_effect = error
        else:
            client.query_points.return_value = SimpleNamespace(points=points or [])
        return VectorIndex(client, "nova_content", min_score=min_score), client

    def test_sorted_filtered_and_scoped(self):
        points = [
            SimpleNamespace(score=0.4, payload={"project_id": "p", "path": "/b"}),
            SimpleNamespace(score=0.9, payload={"project_id": "p", "path": "/a"}),
            SimpleNamespace(score=0.1, payload={"project_id": "p", "path": "/c"}),
        ]
        index, client = self.make_index(points, min_score=0.3)
        matches = asyncio.run(index.query([0.1], "p", limit=3))

        assert [m.metadata["path"] for m in matches] == ["/a", "/b"]
        assert "project_id" not in matches[0].metadata
        kwargs = client.query_points.call_args.kwargs
        assert kwargs["collection_name"] == "nova_content"
        assert kwargs["query_filter"].must[0].match.value == "p"

    def test_failure_wrapped(self):
        index, _ = self.make_index(error=RuntimeError("connection refused"))
        with pytest.raises(ExternalServiceError):
            asyncio.run(index.query([0.1], "p"))
