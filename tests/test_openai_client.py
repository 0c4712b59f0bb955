from __future__ import annotations

import json

import httpx
import pytest

from chat_ai_orx.errors import CompletionError
from chat_ai_orx.openai_client import OpenAIChatClient


def _chat_client(
    transport: httpx.MockTransport,
    *,
    max_output_tokens: int | None = None,
    temperature: float | None = None,
) -> OpenAIChatClient:
    http_client = httpx.AsyncClient(transport=transport)
    return OpenAIChatClient(
        api_key="chat-key",
        model="gpt-4o-mini",
        http_client=http_client,
        base_url="https://api.openai.com/v1/",
        timeout_seconds=1,
        max_output_tokens=max_output_tokens,
        temperature=temperature,
    )


def _reply_payload(content: object) -> dict[str, object]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.anyio
async def test_openai_client_returns_content_verbatim() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_reply_payload("  hello from model  "))

    client = _chat_client(httpx.MockTransport(handler))
    reply = await client.generate_reply([{"role": "user", "content": "hi"}])

    assert reply == "  hello from model  "
    request = captured[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer chat-key"
    body = json.loads(request.content.decode("utf-8"))
    assert body == {
        "model": "gpt-4o-mini",
        "messages": [{"role": "user", "content": "hi"}],
    }
    await client._http_client.aclose()


@pytest.mark.anyio
async def test_openai_client_sends_optional_tuning() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content.decode("utf-8")))
        return httpx.Response(200, json=_reply_payload("ok"))

    client = _chat_client(
        httpx.MockTransport(handler), max_output_tokens=50, temperature=0.2
    )
    await client.generate_reply([{"role": "user", "content": "hi"}])

    assert bodies[0]["max_tokens"] == 50
    assert bodies[0]["temperature"] == 0.2
    await client._http_client.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload",
    [
        _reply_payload(None),
        _reply_payload(""),
        _reply_payload("   "),
        {"choices": [{"message": None}]},
        {"choices": [{}]},
    ],
)
async def test_openai_client_returns_none_for_empty_content(
    payload: dict[str, object],
) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    client = _chat_client(httpx.MockTransport(handler))

    assert await client.generate_reply([{"role": "user", "content": "hi"}]) is None
    await client._http_client.aclose()


@pytest.mark.anyio
async def test_openai_client_joins_content_parts() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=_reply_payload(
                [{"type": "text", "text": "first"}, {"type": "text", "text": "second"}]
            ),
        )

    client = _chat_client(httpx.MockTransport(handler))

    assert await client.generate_reply([]) == "first\nsecond"
    await client._http_client.aclose()


@pytest.mark.anyio
async def test_openai_client_does_not_retry() -> None:
    attempts = 0

    def handler(_: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    client = _chat_client(httpx.MockTransport(handler))

    with pytest.raises(CompletionError) as exc:
        await client.generate_reply([{"role": "user", "content": "hi"}])

    assert attempts == 1
    assert exc.value.upstream_status_code == 503
    assert "overloaded" in exc.value.user_message
    await client._http_client.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("status_code", "message"),
    [
        (401, "Completion service authorization failed."),
        (403, "Completion service authorization failed."),
        (429, "Completion service quota exceeded."),
    ],
)
async def test_openai_client_maps_status_errors(status_code: int, message: str) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error": "nope"})

    client = _chat_client(httpx.MockTransport(handler))

    with pytest.raises(CompletionError) as exc:
        await client.generate_reply([{"role": "user", "content": "hi"}])

    assert exc.value.user_message == message
    await client._http_client.aclose()


@pytest.mark.anyio
async def test_openai_client_maps_timeout_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out")

    client = _chat_client(httpx.MockTransport(handler))

    with pytest.raises(CompletionError) as exc:
        await client.generate_reply([{"role": "user", "content": "hi"}])

    assert exc.value.user_message == "Completion service timed out."
    await client._http_client.aclose()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response_kwargs",
    [
        {"text": "not json"},
        {"json": ["unexpected"]},
        {"json": {"choices": []}},
        {"json": {"choices": ["bad"]}},
    ],
)
async def test_openai_client_rejects_malformed_payload(
    response_kwargs: dict[str, object],
) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **response_kwargs)

    client = _chat_client(httpx.MockTransport(handler))

    with pytest.raises(CompletionError):
        await client.generate_reply([{"role": "user", "content": "hi"}])
    await client._http_client.aclose()
