from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib.parse import quote

import httpx
import jwt

from chat_ai_orx.parsing import json_object
from chat_ai_orx.types import UserIdentity

logger = logging.getLogger(__name__)

DEFAULT_STREAM_BASE_URL = "https://chat.stream-io-api.com"
CHANNEL_TYPE = "messaging"


class StreamChatError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamChatClient:
    """Stream Chat server client acting as identity registry and delivery channel."""

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_STREAM_BASE_URL,
        timeout_seconds: float = 30,
        channel_cache_ttl_seconds: float = 3600,
    ) -> None:
        self._api_key = api_key
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._server_token = build_server_token(api_secret)
        self._channel_cache_ttl_seconds = channel_cache_ttl_seconds
        # channel id -> monotonic time it was provisioned
        self._provisioned_channels: dict[str, float] = {}

    async def query_user(self, user_id: str) -> dict[str, Any] | None:
        query = {
            "filter_conditions": {"id": {"$eq": user_id}},
            "limit": 1,
        }
        payload = await self._request(
            "GET",
            "/users",
            params={"payload": json.dumps(query, separators=(",", ":"))},
        )
        users = payload.get("users")
        if not isinstance(users, list) or not users:
            return None
        return json_object(users[0])

    async def upsert_user(self, identity: UserIdentity, *, role: str) -> None:
        body = {
            "users": {
                identity.user_id: {
                    "id": identity.user_id,
                    "name": identity.name,
                    "email": identity.email,
                    "role": role,
                }
            }
        }
        await self._request("POST", "/users", json_body=body)

    async def ensure_channel(self, channel_id: str, *, created_by_id: str) -> None:
        now = time.monotonic()
        self._evict_expired_channels(now)
        if channel_id in self._provisioned_channels:
            return

        # Get-or-create endpoint: concurrent first calls converge on one channel.
        await self._request(
            "POST",
            f"{_channel_path(channel_id)}/query",
            json_body={"data": {"created_by_id": created_by_id}},
        )
        self._provisioned_channels[channel_id] = now
        logger.info("stream_channel_ready channel_id=%s", channel_id)

    async def publish(self, channel_id: str, *, text: str, sender_id: str) -> None:
        try:
            await self._request(
                "POST",
                f"{_channel_path(channel_id)}/message",
                json_body={"message": {"text": text, "user_id": sender_id}},
            )
        except StreamChatError as exc:
            if exc.status_code == 404:
                # Channel was removed upstream; provision again on the next turn.
                self._provisioned_channels.pop(channel_id, None)
            raise

    def _evict_expired_channels(self, now: float) -> None:
        expired = [
            channel_id
            for channel_id, provisioned_at in self._provisioned_channels.items()
            if now - provisioned_at >= self._channel_cache_ttl_seconds
        ]
        for channel_id in expired:
            del self._provisioned_channels[channel_id]

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        query = {"api_key": self._api_key, **(params or {})}
        headers = {
            "Authorization": self._server_token,
            "stream-auth-type": "jwt",
        }

        try:
            response = await self._http_client.request(
                method,
                url,
                params=query,
                json=json_body,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise StreamChatError(
                f"Stream request failed due to network error ({method} {path})"
            ) from exc

        if response.status_code >= 400:
            detail = _extract_response_detail(response)
            raise StreamChatError(
                f"Stream request failed with status {response.status_code} "
                f"({method} {path}): {detail}",
                status_code=response.status_code,
            )

        try:
            return json_object(response.json())
        except ValueError as exc:
            raise StreamChatError(
                f"Stream returned invalid JSON ({method} {path})",
                status_code=response.status_code,
            ) from exc


def build_server_token(api_secret: str) -> str:
    return jwt.encode({"server": True}, api_secret, algorithm="HS256")


def _channel_path(channel_id: str) -> str:
    return f"/channels/{CHANNEL_TYPE}/{quote(channel_id, safe='')}"


def _extract_response_detail(response: httpx.Response) -> str:
    detail = ""
    try:
        payload = response.json()
        if isinstance(payload, dict):
            detail = str(
                payload.get("message")
                or payload.get("error")
                or payload.get("detail")
                or payload
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
