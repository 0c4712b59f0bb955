from __future__ import annotations

from typing import Literal

NotRegisteredLayer = Literal["identity", "store"]


class ChatServiceError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, user_message: str, *, reply: str | None = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.reply = reply

    def to_payload(self) -> dict[str, str]:
        payload = {"error": self.user_message, "kind": self.kind}
        if self.reply is not None:
            payload["reply"] = self.reply
        return payload


class InvalidInputError(ChatServiceError):
    kind = "invalid_input"
    status_code = 400


class NotRegisteredError(ChatServiceError):
    kind = "not_registered"
    status_code = 404

    def __init__(self, user_message: str, *, layer: NotRegisteredLayer) -> None:
        super().__init__(user_message)
        self.layer = layer

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        payload["layer"] = self.layer
        return payload


class CompletionError(ChatServiceError):
    kind = "completion_error"

    def __init__(
        self,
        user_message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(user_message)
        self.upstream_status_code = status_code


class PersistenceError(ChatServiceError):
    kind = "persistence_error"


class DeliveryError(ChatServiceError):
    kind = "delivery_error"


class InternalError(ChatServiceError):
    kind = "internal_error"
