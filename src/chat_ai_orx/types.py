from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

_USER_ID_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_-]")


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    name: str
    email: str

    def to_dict(self) -> dict[str, str]:
        return {"userId": self.user_id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class Turn:
    id: int
    user_id: str
    message: str
    reply: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "message": self.message,
            "reply": self.reply,
            "createdAt": self.created_at.isoformat(),
        }


def derive_user_id(email: str) -> str:
    # Not injective: "a.b@x.io" and "a_b@x_io" map to the same id.
    return _USER_ID_UNSAFE_RE.sub("_", email)


def channel_id_for_user(user_id: str) -> str:
    return f"chat-{user_id}"
