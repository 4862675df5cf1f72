"""Conversation segmentation: flat message lists into analyzable units."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, timedelta
from itertools import groupby
from typing import Any

from messagemind.config import settings
from messagemind.errors import InvalidInput
from messagemind.models import ConversationUnit, Message, coerce_messages

logger = logging.getLogger(__name__)

ALL_DATES = "all"


def _resolve_date(target_date: date | str | None) -> date | None:
    if target_date is None:
        return None
    if isinstance(target_date, date):
        return target_date
    if target_date.strip().lower() == ALL_DATES:
        return None
    try:
        return date.fromisoformat(target_date.strip())
    except ValueError as exc:
        msg = f"Invalid date '{target_date}', expected YYYY-MM-DD or '{ALL_DATES}'"
        raise InvalidInput(msg) from exc


def _sort_key(message: Message) -> tuple:
    # every remaining field breaks timestamp ties, so input order never matters
    return (
        message.timestamp, message.room_label, message.id, message.sender, message.content
    )


def _split_room(messages: list[Message], window: timedelta) -> list[list[Message]]:
    groups: list[list[Message]] = []
    current: list[Message] = []
    for message in messages:
        if current and message.timestamp - current[-1].timestamp > window:
            groups.append(current)
            current = []
        current.append(message)
    if current:
        groups.append(current)
    return groups


def segment_conversations(
    messages: Iterable[Message | Mapping[str, Any]],
    target_date: date | str | None = None,
    *,
    window: timedelta | None = None,
    min_messages: int | None = None,
) -> list[ConversationUnit]:
    """Group messages into per-room, time-windowed conversation units.

    Args:
        messages: Messages in any order. Mappings are validated into
            ``Message``.
        target_date: Keep only messages from this UTC calendar date.
            ``None`` or ``"all"`` keeps everything.
        window: Largest allowed gap between consecutive messages of one
            unit. Defaults to ``settings.conversation_window_ms``.
        min_messages: Units smaller than this are dropped.

    Returns:
        Units ordered by start time, then room label.

    Raises:
        InvalidInput: Malformed messages or an unparseable date.
    """
    if window is None:
        window = timedelta(milliseconds=settings.conversation_window_ms)
    if min_messages is None:
        min_messages = settings.min_conversation_messages

    day = _resolve_date(target_date)
    selected = coerce_messages(messages)
    if day is not None:
        selected = [m for m in selected if m.timestamp.astimezone(UTC).date() == day]

    ordered = sorted(selected, key=lambda m: (m.room_label, *_sort_key(m)))

    units: list[ConversationUnit] = []
    dropped = 0
    for room_label, room_messages in groupby(ordered, key=lambda m: m.room_label):
        for group in _split_room(list(room_messages), window):
            if len(group) < min_messages:
                dropped += 1
                continue
            units.append(
                ConversationUnit(
                    room_label=room_label,
                    participants=frozenset(m.sender for m in group),
                    messages=tuple(group),
                )
            )

    units.sort(key=lambda u: (u.started_at, u.room_label))
    if dropped:
        logger.debug(
            "Dropped %d conversation group(s) shorter than %d messages", dropped, min_messages
        )
    logger.info("Segmented %d messages into %d conversation unit(s)", len(selected), len(units))
    return units


def format_transcript(messages: Sequence[Message], limit: int | None = None) -> str:
    """Render the most recent messages as ``sender: content`` lines."""
    if limit is None:
        limit = settings.max_prompt_messages
    return "\n".join(f"{m.sender}: {m.content}" for m in messages[-limit:])
