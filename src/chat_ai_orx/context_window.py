from __future__ import annotations

from collections.abc import Iterable

from chat_ai_orx.types import Turn

HISTORY_TURN_LIMIT = 10


def build_context_window(
    *,
    history: Iterable[Turn],
    message: str,
) -> list[dict[str, str]]:
    """Expand stored turns into role-tagged entries and append the new message.

    `history` must already be in ascending creation order; each turn yields a
    user entry followed by an assistant entry.
    """
    messages: list[dict[str, str]] = []
    for turn in history:
        messages.append({"role": "user", "content": turn.message})
        messages.append({"role": "assistant", "content": turn.reply})

    messages.append({"role": "user", "content": message})
    return messages


def oldest_first(turns: Iterable[Turn]) -> list[Turn]:
    return sorted(turns, key=lambda turn: (turn.created_at, turn.id))
