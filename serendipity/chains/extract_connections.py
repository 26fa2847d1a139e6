"""Connection extraction: one generation call per cluster, run concurrently.

Model output is untrusted. Every failure mode (provider error, timeout,
malformed JSON, missing `connections` array) degrades that cluster to zero
candidates and never touches sibling clusters.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from serendipity.chains.connection_prompts import CONNECTIONS_SYSTEM
from serendipity.core.entry_clustering import EntryCluster
from serendipity.core.llm import TextGenerator, parse_llm_json_dict
from serendipity.core.logging import get_logger, log_with_context
from serendipity.core.schemas_connections import ConnectionCandidate

logger = get_logger(__name__)


@dataclass
class ConnectionParseResult:
    """Outcome of parsing one model response."""

    ok: bool
    candidates: list[ConnectionCandidate] = field(default_factory=list)
    error: str | None = None
    dropped: int = 0  # items inside the array that failed validation

    @classmethod
    def failure(cls, error: str) -> "ConnectionParseResult":
        return cls(ok=False, error=error)


@dataclass
class ClusterRequest:
    """One cluster rendered into a prompt, plus the ids the model was shown."""

    cluster: EntryCluster
    prompt: str
    allowed_ids: set[str]


def parse_connections_output(raw_output: str) -> ConnectionParseResult:
    """
    Parse raw model text into connection candidates.

    Args:
        raw_output: Model response, possibly wrapped in markdown fences

    Returns:
        ConnectionParseResult; ok=False when the payload is unusable as a whole
    """
    try:
        parsed: Any = parse_llm_json_dict(raw_output)
    except json.JSONDecodeError as e:
        return ConnectionParseResult.failure(f"invalid JSON: {e}")

    if not isinstance(parsed, dict):
        return ConnectionParseResult.failure("response is not a JSON object")

    items = parsed.get("connections")
    if not isinstance(items, list):
        return ConnectionParseResult.failure("missing connections array")

    candidates: list[ConnectionCandidate] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            candidates.append(ConnectionCandidate.model_validate(item))
        except ValidationError:
            dropped += 1

    return ConnectionParseResult(ok=True, candidates=candidates, dropped=dropped)


def filter_known_ids(
    candidates: list[ConnectionCandidate],
    allowed_ids: set[str],
) -> list[ConnectionCandidate]:
    """Drop self-links and candidates naming entries the model was never shown."""
    return [
        c for c in candidates
        if c.source_entry_id != c.target_entry_id
        and c.source_entry_id in allowed_ids
        and c.target_entry_id in allowed_ids
    ]


async def extract_cluster_connections(
    generator: TextGenerator,
    request: ClusterRequest,
    max_tokens: int,
    timeout: float | None = None,
    run_id: str | None = None,
    cluster_index: int = 0,
) -> list[ConnectionCandidate]:
    """
    Run one cluster through the model and return its valid candidates.

    Raises whatever the provider raises (including TimeoutError); callers
    going through extract_connections() never see it.
    """
    raw = await asyncio.wait_for(
        generator.generate(CONNECTIONS_SYSTEM, request.prompt, max_tokens),
        timeout=timeout,
    )

    result = parse_connections_output(raw)
    if not result.ok:
        log_with_context(
            logger,
            logging.WARNING,
            "Discarding unparseable cluster output",
            run_id=run_id,
            cluster_index=cluster_index,
            cluster=request.cluster.label,
            error=result.error,
            preview=raw[:200].replace("\n", " "),
        )
        return []

    candidates = filter_known_ids(result.candidates, request.allowed_ids)
    rejected = len(result.candidates) - len(candidates)
    if result.dropped or rejected:
        log_with_context(
            logger,
            logging.DEBUG,
            "Dropped invalid candidates",
            run_id=run_id,
            cluster_index=cluster_index,
            malformed=result.dropped,
            unknown_or_self=rejected,
        )
    return candidates


async def extract_connections(
    generator: TextGenerator,
    requests: list[ClusterRequest],
    max_tokens: int,
    timeout: float | None = None,
    run_id: str | None = None,
) -> list[ConnectionCandidate]:
    """
    Fan out one call per cluster, wait for all of them, and flatten.

    Results are concatenated in cluster order. A failed or timed-out cluster
    contributes nothing; the others are unaffected.
    """
    if not requests:
        return []

    results = await asyncio.gather(
        *(
            extract_cluster_connections(
                generator,
                request,
                max_tokens,
                timeout=timeout,
                run_id=run_id,
                cluster_index=index,
            )
            for index, request in enumerate(requests)
        ),
        return_exceptions=True,
    )

    candidates: list[ConnectionCandidate] = []
    for index, result in enumerate(results):
        if isinstance(result, Exception):
            reason = "timed out" if isinstance(result, asyncio.TimeoutError) else str(result)
            log_with_context(
                logger,
                logging.WARNING,
                "Cluster generation failed",
                run_id=run_id,
                cluster_index=index,
                cluster=requests[index].cluster.label,
                error=reason or type(result).__name__,
            )
            continue
        if isinstance(result, BaseException):
            raise result
        candidates.extend(result)

    return candidates
