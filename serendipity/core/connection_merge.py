"""Merge and admission filter for discovered connections.

Turns the flattened candidates from every cluster into rows to insert:

  1. Confidence floor (drop < 0.4)
  2. Intra-batch dedupe on the undirected pair key, first occurrence wins
  3. Drop pairs that already exist in storage, in either direction
  4. Normalize type (unknown -> pattern)
  5. Clamp confidence into [0, 1]
  6. Compose reasoning from headline / body / next step
  7. Mark every row pending

Steps 1-2 run before the store is consulted so the existence check only
covers unique, admissible pairs.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

from serendipity.core.schemas_connections import (
    ConnectionCandidate,
    ConnectionRow,
    ConnectionStatus,
    ConnectionType,
)

# Fixed policy: the system prompt tells the model not to go below this either
CONFIDENCE_FLOOR = 0.4

PAIR_KEY_SEPARATOR = ":"

DEFAULT_CONNECTION_TYPE = ConnectionType.PATTERN

_VALID_TYPES = {t.value for t in ConnectionType}


def pair_key(entry_a: str, entry_b: str) -> str:
    """Canonical, direction-independent key for an entry pair."""
    return PAIR_KEY_SEPARATOR.join(sorted((str(entry_a), str(entry_b))))


def apply_confidence_floor(candidates: Iterable[ConnectionCandidate]) -> list[ConnectionCandidate]:
    """Drop candidates below the floor. Non-finite confidences never pass."""
    return [
        c for c in candidates
        if math.isfinite(c.confidence) and c.confidence >= CONFIDENCE_FLOOR
    ]


def dedupe_candidates(candidates: Iterable[ConnectionCandidate]) -> list[ConnectionCandidate]:
    """Keep the first candidate seen for each undirected pair."""
    seen: set[str] = set()
    unique: list[ConnectionCandidate] = []
    for candidate in candidates:
        key = pair_key(candidate.source_entry_id, candidate.target_entry_id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def admit_candidates(candidates: Iterable[ConnectionCandidate]) -> list[ConnectionCandidate]:
    """Steps 1-2: confidence floor, then intra-batch dedupe."""
    return dedupe_candidates(apply_confidence_floor(candidates))


def candidate_pairs(candidates: Iterable[ConnectionCandidate]) -> list[tuple[str, str]]:
    """(source, target) pairs for a pair-scoped existence query."""
    return [(c.source_entry_id, c.target_entry_id) for c in candidates]


def existing_pair_keys(rows: Iterable[dict[str, Any]]) -> set[str]:
    """Pair keys of connection rows already in storage."""
    return {pair_key(row["source_entry_id"], row["target_entry_id"]) for row in rows}


def exclude_existing(
    candidates: Iterable[ConnectionCandidate],
    existing_keys: set[str],
) -> list[ConnectionCandidate]:
    """Step 3: drop candidates whose pair is already stored."""
    return [
        c for c in candidates
        if pair_key(c.source_entry_id, c.target_entry_id) not in existing_keys
    ]


def normalize_connection_type(raw_type: str | None) -> ConnectionType:
    """Map a model-supplied type onto the enumeration; unknown values become pattern."""
    if raw_type in _VALID_TYPES:
        return ConnectionType(raw_type)
    return DEFAULT_CONNECTION_TYPE


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def compose_reasoning(candidate: ConnectionCandidate) -> str:
    """Headline, body and optional next step joined by blank lines.

    Without a headline the raw reasoning is used unchanged.
    """
    if not candidate.headline:
        return candidate.reasoning

    reasoning = f"{candidate.headline}\n\n{candidate.reasoning}"
    if candidate.investigation:
        reasoning += f"\n\nNext step: {candidate.investigation}"
    return reasoning


def to_connection_row(candidate: ConnectionCandidate) -> ConnectionRow:
    """Steps 4-7 for a single admitted candidate."""
    return ConnectionRow(
        source_entry_id=candidate.source_entry_id,
        target_entry_id=candidate.target_entry_id,
        connection_type=normalize_connection_type(candidate.type),
        reasoning=compose_reasoning(candidate),
        confidence=clamp_confidence(candidate.confidence),
        status=ConnectionStatus.PENDING,
    )


def build_connection_rows(
    admitted: Iterable[ConnectionCandidate],
    existing_rows: Iterable[dict[str, Any]],
) -> list[ConnectionRow]:
    """
    Steps 3-7: filter admitted candidates against stored connections and
    convert the survivors into insertable rows.

    Args:
        admitted: Output of admit_candidates()
        existing_rows: Stored connections (source_entry_id, target_entry_id)

    Returns:
        Rows to insert, in candidate order
    """
    fresh = exclude_existing(admitted, existing_pair_keys(existing_rows))
    return [to_connection_row(c) for c in fresh]
