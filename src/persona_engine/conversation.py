"""Conversation statistics and quality scoring.

Chat statistics are derived data: they are recomputed from the message list
after every mutation and never edited on their own.

The quality score is a transparent additive heuristic (base 0.5, capped at
1.0). Every bonus that applies is listed by name in ``factors``:

* ``+0.1`` "Fast response time": mean assistant latency below 3000 ms
* ``+0.2`` "High user engagement": more than 5 user messages
* ``+0.1`` "Extended conversation": session longer than 10 minutes
* ``+0.1`` "Positive user feedback": any message marked helpful
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Sequence

from loguru import logger

from .core.exceptions import InvalidInput, MessageNotFoundError
from .core.models import (
    DEFAULT_CHAT_TITLE,
    Chat,
    ChatStats,
    ChatStatus,
    ChatSummary,
    Message,
    MessageFeedback,
    MessageMetadata,
    ProfileStats,
    QualityAssessment,
)

QUALITY_BASE = 0.5
FAST_RESPONSE_MS = 3000.0
# Assistant messages without a recorded latency count as this for quality
ASSUMED_RESPONSE_MS = 1000.0
ENGAGED_USER_MESSAGES = 5
EXTENDED_SESSION_MINUTES = 10
TITLE_CHARS = 50


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def session_duration_minutes(messages: Sequence[Message]) -> int:
    """Minutes between first and last message, 0 for fewer than two."""
    if len(messages) < 2:
        return 0
    delta = messages[-1].timestamp - messages[0].timestamp
    return _round_half_up(delta.total_seconds() / 60.0)


def rolling_session_average(previous_average: float, n: int, this_session: float) -> float:
    """Fold the n-th session into a running mean of session lengths."""
    if n <= 0:
        raise InvalidInput("n", "session count must be positive")
    return ((previous_average * (n - 1)) + this_session) / n


class ConversationAggregator:
    """Recomputes derived chat statistics and the quality score."""

    def recompute(self, messages: Sequence[Message]) -> ChatStats:
        user_messages = [m for m in messages if m.role == "user"]
        assistant_messages = [m for m in messages if m.role == "assistant"]

        average_response = 0.0
        if assistant_messages:
            average_response = sum(
                m.metadata.response_time_ms or 0.0 for m in assistant_messages
            ) / len(assistant_messages)

        return ChatStats(
            message_count=len(messages),
            user_message_count=len(user_messages),
            assistant_message_count=len(assistant_messages),
            total_tokens=sum(m.metadata.token_count for m in messages),
            average_response_time_ms=average_response,
            session_duration_minutes=session_duration_minutes(messages),
            last_activity=messages[-1].timestamp if messages else None,
        )

    def quality(self, messages: Sequence[Message]) -> QualityAssessment:
        score = QUALITY_BASE
        factors: list[str] = []

        assistant_messages = [m for m in messages if m.role == "assistant"]
        if assistant_messages:
            mean_latency = sum(
                m.metadata.response_time_ms or ASSUMED_RESPONSE_MS
                for m in assistant_messages
            ) / len(assistant_messages)
            if mean_latency < FAST_RESPONSE_MS:
                score += 0.1
                factors.append("Fast response time")

        user_count = sum(1 for m in messages if m.role == "user")
        if user_count > ENGAGED_USER_MESSAGES:
            score += 0.2
            factors.append("High user engagement")

        if session_duration_minutes(messages) > EXTENDED_SESSION_MINUTES:
            score += 0.1
            factors.append("Extended conversation")

        if any(m.feedback is not None and m.feedback.helpful is True for m in messages):
            score += 0.1
            factors.append("Positive user feedback")

        return QualityAssessment(score=min(1.0, score), factors=factors)

    def refresh(self, chat: Chat) -> Chat:
        """Recompute stats and quality of *chat* in place."""
        chat.stats = self.recompute(chat.messages)
        chat.quality = self.quality(chat.messages)
        return chat

    def summarize(self, chats: Sequence[Chat]) -> ChatSummary:
        """Totals and averages over *chats*.

        Averages are None for an empty sequence.
        """
        if not chats:
            return ChatSummary()

        return ChatSummary(
            total_chats=len(chats),
            active_chats=sum(1 for c in chats if c.status == ChatStatus.ACTIVE),
            total_messages=sum(c.stats.message_count for c in chats),
            average_session_duration=(
                sum(c.stats.session_duration_minutes for c in chats) / len(chats)
            ),
            average_quality=sum(c.quality.score for c in chats) / len(chats),
        )

    # ------------------------------------------------------------------
    # Profile-level aggregation
    # ------------------------------------------------------------------

    def record_session(self, stats: ProfileStats, chat_stats: ChatStats) -> ProfileStats:
        """Fold a finished chat's duration into the profile's session average."""
        stats.sessions_recorded += 1
        stats.average_session_length = rolling_session_average(
            stats.average_session_length,
            stats.sessions_recorded,
            chat_stats.session_duration_minutes,
        )
        return stats

    def record_satisfaction(self, stats: ProfileStats, feedback: MessageFeedback) -> ProfileStats:
        """Fold one feedback sample into the satisfaction running mean.

        A rating r maps to (r - 1) / 4; without a rating, helpful counts as
        1.0 and not helpful as 0.0. Feedback with neither is ignored.
        """
        if feedback.rating is not None:
            sample = (feedback.rating - 1) / 4.0
        elif feedback.helpful is not None:
            sample = 1.0 if feedback.helpful else 0.0
        else:
            return stats

        stats.feedback_count += 1
        n = stats.feedback_count
        stats.satisfaction_score = ((stats.satisfaction_score * (n - 1)) + sample) / n
        return stats


# ----------------------------------------------------------------------
# Chat mutation helpers
# ----------------------------------------------------------------------


def append_message(
    chat: Chat,
    role: str,
    content: str,
    metadata: MessageMetadata | None = None,
    timestamp: datetime | None = None,
    aggregator: ConversationAggregator | None = None,
) -> Message:
    """Append a message to *chat* and recompute its derived statistics.

    Timestamps never go backwards within a chat: a timestamp older than the
    last message is raised to the last message's timestamp.
    """
    if not content or not content.strip():
        raise InvalidInput("content", "message must not be empty")

    timestamp = timestamp or datetime.now(timezone.utc)
    if chat.messages and timestamp < chat.messages[-1].timestamp:
        timestamp = chat.messages[-1].timestamp

    message = Message(
        role=role,
        content=content,
        timestamp=timestamp,
        metadata=metadata or MessageMetadata(),
    )
    chat.messages.append(message)

    if chat.title == DEFAULT_CHAT_TITLE and role == "user":
        text = content.strip()
        chat.title = text[:TITLE_CHARS] + ("..." if len(text) > TITLE_CHARS else "")

    chat.updated_at = timestamp
    (aggregator or ConversationAggregator()).refresh(chat)
    return message


def add_feedback(
    chat: Chat,
    message_id: str,
    feedback: MessageFeedback,
    aggregator: ConversationAggregator | None = None,
) -> Message:
    """Merge *feedback* into a message's existing feedback."""
    message = chat.find_message(message_id)
    if message is None:
        raise MessageNotFoundError(message_id)

    merged = (message.feedback or MessageFeedback()).model_dump()
    merged.update(feedback.model_dump(exclude_unset=True))
    message.feedback = MessageFeedback.model_validate(merged)

    (aggregator or ConversationAggregator()).refresh(chat)
    logger.debug(f"Feedback stored on message {message_id} in chat {chat.id}")
    return message


def archive_chat(chat: Chat, now: datetime | None = None) -> Chat:
    chat.status = ChatStatus.ARCHIVED
    chat.archived_at = now or datetime.now(timezone.utc)
    return chat
