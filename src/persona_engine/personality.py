"""Personality evolution audit trail.

The ledger only appends to ``personality.evolution_history`` and counts
entries in ``stats.evolution_count``. It never changes the communication
style numbers or traits; callers that adjust those do so before recording
the event that describes the change.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from .core.models import (
    CommunicationStyle,
    PersonalityEvolutionEvent,
    Profile,
    Trait,
)


class PersonalityLedger:
    """Append-only evolution log plus read access to the current snapshot."""

    def __init__(
        self,
        profile: Profile,
        clock: Callable[[], datetime] | None = None,
    ):
        self._profile = profile
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record_evolution(self, change: str, reason: str = "") -> PersonalityEvolutionEvent:
        """Append an evolution event and bump the evolution counter."""
        event = PersonalityEvolutionEvent(
            timestamp=self._clock(),
            change=change,
            reason=reason,
        )
        self._profile.personality.evolution_history.append(event)
        self._profile.stats.evolution_count += 1
        logger.info(
            f"Personality evolution #{self._profile.stats.evolution_count} "
            f"recorded for profile {self._profile.id}: {change[:80]}"
        )
        return event

    def record_feedback(self, feedback: str, context: str = "") -> PersonalityEvolutionEvent:
        return self.record_evolution(
            change=f"Adapted based on user feedback: {feedback}",
            reason=context,
        )

    def history(self) -> list[PersonalityEvolutionEvent]:
        return list(self._profile.personality.evolution_history)

    def traits(self) -> list[Trait]:
        return [t.model_copy() for t in self._profile.personality.traits]

    def style(self) -> CommunicationStyle:
        return self._profile.personality.communication_style.model_copy()
