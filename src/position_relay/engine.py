"""Reconciliation engine: one fetch, classify, write cycle.

The engine owns the ReconciliationState and is the only code that mutates it
during normal operation. A cycle never raises for expected failures: feed and
store errors are folded into the backoff counters and reported through the
returned CycleOutcome. Unexpected exceptions propagate to the scheduler, which
records them and keeps the loop alive.

Cycle order:

1. If shutdown has been requested, return immediately (no network I/O).
2. Fetch the latest sample (the feed client retries internally).
3. Classify it against the last accepted identifier.
4. For NEW samples, write downstream and only then advance the identifier.
5. Apply success or failure to the backoff controller.
"""

from __future__ import annotations

from dataclasses import dataclass

from position_relay.backoff import BackoffController
from position_relay.change_detector import classify
from position_relay.config import Config
from position_relay.exceptions import DownstreamError, UpstreamError
from position_relay.feed_client import FeedSource
from position_relay.logging import get_logger
from position_relay.store_writer import SampleStore
from position_relay.types import Classification, CycleOutcome, ReconciliationState

logger = get_logger(__name__)


@dataclass
class RelayContext:
    """Everything a reconciliation cycle needs.

    Attributes:
        config: Loaded application configuration.
        state: The process-lifetime reconciliation state.
        feed: Source of the latest upstream sample.
        store: Destination for accepted samples.
        backoff: Controller for failure counters and the poll interval.
    """

    config: Config
    state: ReconciliationState
    feed: FeedSource
    store: SampleStore
    backoff: BackoffController

    def close(self) -> None:
        """Close both outbound clients."""
        self.feed.close()
        self.store.close()


def run_cycle(context: RelayContext) -> CycleOutcome:
    """Run one reconciliation cycle.

    Args:
        context: The relay context holding state and collaborators.

    Returns:
        What the cycle did. ``succeeded`` is False only for feed or store
        failures; INVALID and DUPLICATE samples count as successful cycles.
    """
    state = context.state
    if state.shutting_down:
        logger.debug("Shutdown in progress, skipping cycle")
        return CycleOutcome(succeeded=False, skipped=True)

    state.cycle_count += 1
    log = logger.with_context(cycle=state.cycle_count)

    try:
        sample = context.feed.fetch_latest()
    except UpstreamError as e:
        context.backoff.record_failure(state)
        state.last_error = str(e)
        log.warning(
            "Feed fetch failed (%s): %s",
            e.kind,
            e,
            extra={"error_kind": str(e.kind)},
        )
        return CycleOutcome(succeeded=False, error=str(e))

    classification = classify(sample, state)
    log = logger.with_context(cycle=state.cycle_count, entry_id=sample.entry_id)

    if classification == Classification.FIRST_SEEN:
        state.last_accepted_entry_id = sample.entry_id
        log.info(
            "Baseline established at entry %s; no write on first observation",
            sample.entry_id,
            extra={"classification": str(classification)},
        )
    elif classification == Classification.DUPLICATE:
        log.debug(
            "No new data (entry %s)",
            sample.entry_id,
            extra={"classification": str(classification)},
        )
    elif classification == Classification.INVALID:
        log.warning(
            "Discarding entry %s with invalid coordinates (%s, %s)",
            sample.entry_id,
            sample.latitude,
            sample.longitude,
            extra={"classification": str(classification)},
        )
    else:
        try:
            context.store.write(sample)
        except DownstreamError as e:
            context.backoff.record_failure(state)
            state.last_error = str(e)
            log.warning(
                "Store write failed (%s): %s; entry %s will be retried next cycle",
                e.kind,
                e,
                sample.entry_id,
                extra={"error_kind": str(e.kind)},
            )
            return CycleOutcome(
                succeeded=False, classification=classification, error=str(e)
            )

        state.last_accepted_entry_id = sample.entry_id
        state.write_count += 1
        context.backoff.record_success(state)
        log.info(
            "Relayed entry %s (%s, %s)",
            sample.entry_id,
            sample.latitude,
            sample.longitude,
            extra={"classification": str(classification)},
        )
        return CycleOutcome(succeeded=True, classification=classification, wrote=True)

    context.backoff.record_success(state)
    return CycleOutcome(succeeded=True, classification=classification)


def record_unexpected_error(state: ReconciliationState, error: Exception) -> None:
    """Record an exception that escaped a cycle without stopping the process."""
    state.unexpected_errors += 1
    state.last_error = f"{type(error).__name__}: {error}"


__all__ = ["RelayContext", "record_unexpected_error", "run_cycle"]
