import asyncio
import json

import httpx
import pytest

from shared.clients.embed.gemini.EmbedClientGemini import EmbedClientGemini
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.llm.gemini.LLMClientGemini import LLMClientGemini
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.models.errors import EmbeddingError, GenerationError


def run(client, call):
    async def _run():
        await client.boot()
        try:
            return await call()
        finally:
            await client.close()

    return asyncio.run(_run())


def json_transport(body: dict, status_code: int = 200, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def ollama_env(monkeypatch):
    monkeypatch.setenv("EMBED_RETRY_BACKOFF", "0")
    monkeypatch.setenv("EMBED_OLLAMA_BASE_URL", "http://ollama.test")
    monkeypatch.setenv("EMBED_MODEL", "nomic-embed-text")
    monkeypatch.setenv("LLM_OLLAMA_BASE_URL", "http://ollama.test")
    monkeypatch.setenv("LLM_CHAT_MODEL", "llama3")


@pytest.fixture
def gemini_env(monkeypatch):
    monkeypatch.setenv("EMBED_RETRY_BACKOFF", "0")
    monkeypatch.setenv("EMBED_GEMINI_API_KEY", "gkey")
    monkeypatch.setenv("EMBED_MODEL", "text-embedding-004")
    monkeypatch.setenv("LLM_GEMINI_API_KEY", "gkey")
    monkeypatch.setenv("LLM_CHAT_MODEL", "gemini-1.5-flash")


##########################################
################ EMBED ###################
##########################################

def test_ollama_embed_text(ollama_env, helper_config):
    seen: list[httpx.Request] = []
    client = EmbedClientOllama(helper_config, transport=json_transport({"embeddings": [[1, 2, 3]]}, seen=seen))

    vector = run(client, lambda: client.do_embed_text("retention policy"))

    assert vector == [1.0, 2.0, 3.0]
    assert seen[0].url.path == "/api/embed"
    assert json.loads(seen[0].content) == {"model": "nomic-embed-text", "input": ["retention policy"]}


@pytest.mark.parametrize(
    "body, status_code",
    [
        ({"embeddings": [[]]}, 200),
        ({"embeddings": [["a", "b"]]}, 200),
        ({"error": "model not found"}, 404),
        ({"embeddings": [[0.1], [0.2]]}, 200),
    ],
)
def test_ollama_invalid_embeddings_raise(ollama_env, helper_config, body, status_code):
    client = EmbedClientOllama(helper_config, transport=json_transport(body, status_code=status_code))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("retention policy"))


def test_empty_text_is_not_sent(ollama_env, helper_config):
    seen: list[httpx.Request] = []
    client = EmbedClientOllama(helper_config, transport=json_transport({}, seen=seen))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("   "))

    assert seen == []


def test_ollama_vector_size_from_model_info(ollama_env, helper_config):
    body = {"model_info": {"general.architecture": "nomic-bert", "nomic-bert.embedding_length": 768}}
    client = EmbedClientOllama(helper_config, transport=json_transport(body))

    assert run(client, client.do_fetch_embedding_vector_size) == (768, "Cosine")


def test_transient_failures_are_retried(ollama_env, helper_config):
    # None stands for a read timeout
    answers = [
        None,
        httpx.Response(503, json={"error": "loading model"}),
        httpx.Response(200, json={"embeddings": [[0.5, 0.5]]}),
    ]
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        answer = answers.pop(0)
        if answer is None:
            raise httpx.ReadTimeout("read timed out", request=request)
        return answer

    client = EmbedClientOllama(helper_config, transport=httpx.MockTransport(handler))

    assert run(client, lambda: client.do_embed_text("retention policy")) == [0.5, 0.5]
    assert len(seen) == 3


def test_retries_are_bounded(ollama_env, monkeypatch, helper_config):
    monkeypatch.setenv("EMBED_RETRIES", "1")
    seen: list[httpx.Request] = []
    client = EmbedClientOllama(helper_config, transport=json_transport({"error": "overloaded"}, status_code=429, seen=seen))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("retention policy"))
    assert len(seen) == 2


def test_zero_retries_sends_one_request(ollama_env, helper_config):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        raise httpx.ConnectTimeout("connect timed out", request=request)

    client = EmbedClientOllama(helper_config, transport=httpx.MockTransport(handler))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("retention policy", retries=0))
    assert len(seen) == 1


def test_client_errors_are_not_retried(ollama_env, helper_config):
    seen: list[httpx.Request] = []
    client = EmbedClientOllama(helper_config, transport=json_transport({"error": "model not found"}, status_code=404, seen=seen))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("retention policy"))
    assert len(seen) == 1


def test_transport_failure_becomes_embedding_error(ollama_env, helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = EmbedClientOllama(helper_config, transport=httpx.MockTransport(handler))

    with pytest.raises(EmbeddingError):
        run(client, lambda: client.do_embed_text("retention policy"))


def test_gemini_embed_single_and_batch(gemini_env, helper_config):
    seen: list[httpx.Request] = []
    single = EmbedClientGemini(helper_config, transport=json_transport({"embedding": {"values": [0.5, 0.25]}}, seen=seen))
    batch = EmbedClientGemini(
        helper_config,
        transport=json_transport({"embeddings": [{"values": [0.1]}, {"values": [0.2]}]}, seen=seen),
    )

    assert run(single, lambda: single.do_embed_text("one")) == [0.5, 0.25]
    assert run(batch, lambda: batch.do_embed(["one", "two"])) == [[0.1], [0.2]]
    assert seen[0].url.path.endswith("/models/text-embedding-004:embedContent")
    assert seen[1].url.path.endswith("/models/text-embedding-004:batchEmbedContents")
    assert seen[0].headers["x-goog-api-key"] == "gkey"


def test_gemini_requests_configured_dimensions(gemini_env, monkeypatch, helper_config):
    monkeypatch.setenv("EMBED_GEMINI_DIMENSIONS", "256")
    seen: list[httpx.Request] = []
    single = EmbedClientGemini(helper_config, transport=json_transport({"embedding": {"values": [0.5]}}, seen=seen))
    batch = EmbedClientGemini(
        helper_config,
        transport=json_transport({"embeddings": [{"values": [0.1]}, {"values": [0.2]}]}, seen=seen),
    )

    run(single, lambda: single.do_embed_text("one"))
    run(batch, lambda: batch.do_embed(["one", "two"]))

    assert json.loads(seen[0].content)["outputDimensionality"] == 256
    assert [r["outputDimensionality"] for r in json.loads(seen[1].content)["requests"]] == [256, 256]
    assert run(single, single.do_fetch_embedding_vector_size) == (256, "Cosine")


##########################################
################# LLM ####################
##########################################

def test_ollama_generate(ollama_env, helper_config):
    seen: list[httpx.Request] = []
    client = LLMClientOllama(helper_config, transport=json_transport({"message": {"content": "  Seven years.\n"}}, seen=seen))

    answer = run(client, lambda: client.do_generate("How long?"))

    assert answer == "Seven years."
    body = json.loads(seen[0].content)
    assert body["stream"] is False
    assert body["messages"] == [{"role": "user", "content": "How long?"}]
    assert body["options"] == {"temperature": 0.2}


def test_gemini_generate(gemini_env, helper_config):
    body = {"candidates": [{"content": {"parts": [{"text": "Seven "}, {"text": "years."}]}}]}
    client = LLMClientGemini(helper_config, transport=json_transport(body))

    assert run(client, lambda: client.do_generate("How long?")) == "Seven years."


def test_gemini_without_candidates_raises(gemini_env, helper_config):
    client = LLMClientGemini(helper_config, transport=json_transport({"promptFeedback": {"blockReason": "SAFETY"}}))

    with pytest.raises(GenerationError):
        run(client, lambda: client.do_generate("How long?"))


def test_llm_error_status_raises(ollama_env, helper_config):
    client = LLMClientOllama(helper_config, transport=json_transport({"error": "overloaded"}, status_code=503))

    with pytest.raises(GenerationError):
        run(client, lambda: client.do_generate("How long?"))
