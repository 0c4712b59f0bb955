from __future__ import annotations

from typing import Any

import httpx

from chat_ai_orx.errors import CompletionError


class OpenAIChatClient:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout_seconds: float,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature

    async def generate_reply(self, messages: list[dict[str, str]]) -> str | None:
        url = f"{self._base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
        }
        if self._max_output_tokens is not None:
            payload["max_tokens"] = self._max_output_tokens
        if self._temperature is not None:
            payload["temperature"] = self._temperature

        try:
            response = await self._http_client.post(
                url,
                json=payload,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise CompletionError("Completion service timed out.") from exc
        except httpx.HTTPError as exc:
            raise CompletionError("Completion service is unreachable.") from exc

        if response.status_code < 400:
            return _extract_reply_text(response)

        if response.status_code in {401, 403}:
            raise CompletionError(
                "Completion service authorization failed.",
                status_code=response.status_code,
            )

        if response.status_code == 429:
            raise CompletionError(
                "Completion service quota exceeded.",
                status_code=response.status_code,
            )

        detail = _extract_response_detail(response)
        raise CompletionError(
            f"Completion failed: {detail}",
            status_code=response.status_code,
        )


def _extract_reply_text(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError as exc:
        raise CompletionError("Completion service returned invalid JSON.") from exc

    if not isinstance(payload, dict):
        raise CompletionError("Completion service returned an invalid response format.")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionError("Completion service returned no choices.")

    first_choice = choices[0]
    if not isinstance(first_choice, dict):
        raise CompletionError("Completion service returned an invalid choice payload.")

    message = first_choice.get("message")
    if message is None:
        return None
    if not isinstance(message, dict):
        raise CompletionError("Completion service returned an invalid message payload.")

    content = _extract_content_text(message.get("content"))
    return content or None


def _extract_content_text(content: Any) -> str:
    if isinstance(content, str):
        return content if content.strip() else ""

    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str) and text.strip():
                    parts.append(text)
        return "\n".join(parts)

    return ""


def _extract_response_detail(response: httpx.Response) -> str:
    detail = ""
    try:
        payload = response.json()
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict):
                error = error.get("message") or error
            detail = str(
                error or payload.get("message") or payload.get("detail") or payload
            )
        else:
            detail = str(payload)
    except ValueError:
        detail = response.text

    detail = " ".join(detail.strip().split())
    if not detail:
        return "No error detail"
    if len(detail) > 240:
        return f"{detail[:240]}..."
    return detail
