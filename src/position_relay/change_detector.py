"""Change detection for fetched samples.

The detector compares a sample with the engine's last accepted identifier and
decides whether it warrants a downstream write. It never mutates state; the
engine applies the verdict.

Invalid coordinates on an otherwise new entry are downgraded to INVALID rather
than raised: the entry is not written and the baseline identifier is not
advanced, so a known-good downstream position is never overwritten and the
next valid entry is still compared against the old baseline.
"""

from __future__ import annotations

import math

from position_relay.exceptions import ValidationError
from position_relay.types import Classification, ReconciliationState, Sample


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Check that a coordinate pair is writable.

    Args:
        latitude: Latitude in degrees.
        longitude: Longitude in degrees.

    Raises:
        ValidationError: If either value is not finite, out of range, or the
            pair is the 0,0 sentinel a tracker reports before it has a fix.
    """
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ValidationError(f"Non-numeric coordinates: {latitude}, {longitude}")
    if latitude == 0 and longitude == 0:
        raise ValidationError("Coordinates are the 0,0 sentinel")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError(f"Latitude out of range: {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError(f"Longitude out of range: {longitude}")


def classify(sample: Sample, state: ReconciliationState) -> Classification:
    """Classify a sample relative to the reconciliation state.

    Args:
        sample: The freshly fetched sample.
        state: Current reconciliation state (read only).

    Returns:
        FIRST_SEEN when no identifier has been accepted yet, DUPLICATE when the
        identifier matches the last accepted one, INVALID for a different
        identifier with unwritable coordinates, otherwise NEW.
    """
    if state.last_accepted_entry_id is None:
        return Classification.FIRST_SEEN
    if sample.entry_id == state.last_accepted_entry_id:
        return Classification.DUPLICATE
    try:
        validate_coordinates(sample.latitude, sample.longitude)
    except ValidationError:
        return Classification.INVALID
    return Classification.NEW


__all__ = ["classify", "validate_coordinates"]
