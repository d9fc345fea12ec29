"""Core data types for the position relay.

This module holds the values that flow through a reconciliation cycle:

- Sample: one immutable feed entry, normalized from the upstream response
- Classification: the change detector's verdict for a sample
- ReconciliationState: the process-lifetime mutable record owned by the engine
- CycleOutcome: what a single cycle did, for logging and --once mode

Usage:
    from position_relay.types import Classification, ReconciliationState

    state = ReconciliationState.initial(current_interval_ms=15000)
    if classification == Classification.NEW:
        ...
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

# Entry identifiers are opaque and ordered; ThingSpeak uses integers but
# webhook callers may send string tokens.
type EntryId = int | str


@dataclass(frozen=True)
class Sample:
    """A single position entry fetched from the feed.

    Attributes:
        entry_id: Upstream identifier, unique and increasing per feed.
        latitude: Latitude coerced to float (may be nan if upstream sent junk).
        longitude: Longitude coerced to float (may be nan if upstream sent junk).
        captured_at: Upstream-supplied timestamp string, passed through untouched.
        ignition: Optional ignition status field, passed through untouched.
    """

    entry_id: EntryId
    latitude: float
    longitude: float
    captured_at: str
    ignition: str | None = None


class Classification(StrEnum):
    """Change detector verdicts.

    Values:
        FIRST_SEEN: No baseline yet; adopt the identifier without writing.
        DUPLICATE: Same identifier as the last accepted one; no-op.
        NEW: Different identifier with valid coordinates; write it.
        INVALID: Different identifier but unwritable coordinates; no-op.
    """

    FIRST_SEEN = "first_seen"
    DUPLICATE = "duplicate"
    NEW = "new"
    INVALID = "invalid"


@dataclass
class ReconciliationState:
    """Mutable state owned by the reconciliation engine.

    Only the active cycle mutates this record. Health snapshots read it
    without locking and may observe a partially updated state.
    """

    current_interval_ms: int
    last_success_at: datetime
    last_accepted_entry_id: EntryId | None = None
    consecutive_failures: int = 0
    total_failures: int = 0
    shutting_down: bool = False

    # Diagnostics
    cycle_count: int = 0
    write_count: int = 0
    unexpected_errors: int = 0
    last_error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_monotonic: float = field(default_factory=time.monotonic)

    @classmethod
    def initial(cls, current_interval_ms: int) -> ReconciliationState:
        """Create the state for a freshly started process.

        Args:
            current_interval_ms: The configured base poll interval.

        Returns:
            State with no accepted identifier and last success set to now.
        """
        now = datetime.now(UTC)
        return cls(
            current_interval_ms=current_interval_ms,
            last_success_at=now,
            started_at=now,
        )


@dataclass(frozen=True)
class CycleOutcome:
    """Result of a single reconciliation cycle.

    Attributes:
        succeeded: Whether the cycle counted as a success for backoff purposes.
        classification: Change detector verdict, or None if no sample was fetched.
        wrote: Whether a downstream write was confirmed.
        skipped: True when the cycle short-circuited because of shutdown.
        error: Error message for failed cycles.
    """

    succeeded: bool
    classification: Classification | None = None
    wrote: bool = False
    skipped: bool = False
    error: str | None = None


__all__ = [
    "Classification",
    "CycleOutcome",
    "EntryId",
    "ReconciliationState",
    "Sample",
]
