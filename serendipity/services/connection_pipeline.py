"""Serendipity Engine: connection discovery pipelines.

Two entry points share one flow:

    fetch entries -> cluster -> extract (concurrent, per cluster)
        -> admit (floor + dedupe) -> drop already-stored pairs -> insert

- auto_connect: one new entry against up to 30 recent entries of its project
- bulk_connect: up to 100 entries of a project against each other

Empty inputs are successful zero-count results and never call the model.
The existence check is read-then-write; two runs racing on the same new pair
can both insert it.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from serendipity.chains.connection_prompts import (
    CONNECTIONS_SYSTEM,
    build_bulk_connections_user_prompt,
    build_connections_user_prompt,
)
from serendipity.chains.extract_connections import (
    ClusterRequest,
    extract_connections,
    filter_known_ids,
    parse_connections_output,
)
from serendipity.core.config import Settings, get_settings
from serendipity.core.connection_merge import (
    admit_candidates,
    build_connection_rows,
    candidate_pairs,
    to_connection_row,
)
from serendipity.core.entry_clustering import (
    BulkTagClusterStrategy,
    ClusterStrategy,
    IncrementalTagClusterStrategy,
)
from serendipity.core.errors import NotFoundError
from serendipity.core.llm import TextGenerator, get_text_generator
from serendipity.core.logging import get_logger, log_with_context
from serendipity.core.schemas_connections import ConnectionRow, Entry
from serendipity.db.entry_store import EntryStore, SupabaseEntryStore

logger = get_logger(__name__)

# Recent-entry windows per call site
AUTO_CONNECT_POOL_SIZE = 30
BULK_CONNECT_POOL_SIZE = 100
SUGGEST_POOL_SIZE = 50


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    run_id: str
    connections_found: int = 0
    clusters: int = 0
    candidates: int = 0


@dataclass
class SuggestionContext:
    """Everything needed to stream suggestions for one entry."""

    entry: Entry
    pool: list[Entry] = field(default_factory=list)

    @property
    def allowed_ids(self) -> set[str]:
        return {self.entry.id, *(e.id for e in self.pool)}

    @property
    def has_work(self) -> bool:
        return bool(self.pool) and _has_content(self.entry)


def _has_content(entry: Entry) -> bool:
    return bool(entry.content and entry.content.strip())


class ConnectionPipeline:
    """Orchestrates connection discovery against an entry store and a model."""

    def __init__(
        self,
        store: EntryStore | None = None,
        generator: TextGenerator | None = None,
        settings: Settings | None = None,
        incremental_strategy: ClusterStrategy | None = None,
        bulk_strategy: ClusterStrategy | None = None,
    ):
        self.store = store if store is not None else SupabaseEntryStore()
        self.settings = settings or get_settings()
        self.incremental_strategy = incremental_strategy or IncrementalTagClusterStrategy()
        self.bulk_strategy = bulk_strategy or BulkTagClusterStrategy()
        self._generator = generator

    @property
    def generator(self) -> TextGenerator:
        # Resolved lazily so zero-work runs never need a provider key
        if self._generator is None:
            self._generator = get_text_generator(self.settings)
        return self._generator

    # ------------------------------------------------------------------
    # Auto-connect
    # ------------------------------------------------------------------

    async def auto_connect(self, entry_id: str, user_id: str) -> PipelineResult:
        """
        Discover connections between one entry and its project's recent entries.

        Args:
            entry_id: Focal entry id
            user_id: Acting user; must own the entry's project

        Returns:
            PipelineResult with the number of connections inserted

        Raises:
            NotFoundError: Entry missing or not owned by user_id
            StoreWriteError: Batch insert failed
        """
        result = PipelineResult(run_id=str(uuid4()))
        entry = await self._get_owned_entry(str(entry_id), str(user_id))

        if not _has_content(entry):
            log_with_context(logger, logging.INFO, "Auto-connect skipped: entry has no content",
                             run_id=result.run_id, entry_id=entry.id)
            return result

        pool = await self.store.list_project_entries(
            entry.project_id, AUTO_CONNECT_POOL_SIZE, exclude_entry_id=entry.id
        )
        clusters = self.incremental_strategy.cluster(pool, focus=entry)
        result.clusters = len(clusters)
        if not clusters:
            log_with_context(logger, logging.INFO, "Auto-connect skipped: no other entries",
                             run_id=result.run_id, entry_id=entry.id)
            return result

        log_with_context(
            logger,
            logging.INFO,
            "Auto-connect started",
            run_id=result.run_id,
            entry_id=entry.id,
            pool=len(pool),
            clusters=",".join(f"{c.label}:{len(c)}" for c in clusters),
        )

        requests = [
            ClusterRequest(
                cluster=cluster,
                prompt=build_connections_user_prompt(entry, cluster.entries),
                allowed_ids={entry.id, *cluster.entry_ids},
            )
            for cluster in clusters
        ]
        candidates = await extract_connections(
            self.generator,
            requests,
            self.settings.AUTO_CONNECT_MAX_TOKENS,
            timeout=self.settings.CLUSTER_CALL_TIMEOUT_SECONDS,
            run_id=result.run_id,
        )
        result.candidates = len(candidates)

        admitted = admit_candidates(candidates)
        if not admitted:
            return self._finish(result, admitted=0, rows=[])

        existing = await self.store.list_connections_between(candidate_pairs(admitted))
        rows = build_connection_rows(admitted, existing)
        return await self._persist(result, admitted=len(admitted), rows=rows)

    # ------------------------------------------------------------------
    # Bulk connect
    # ------------------------------------------------------------------

    async def bulk_connect(self, project_id: str, user_id: str) -> PipelineResult:
        """
        Re-scan a whole project for connections between any of its entries.

        Args:
            project_id: Project id
            user_id: Acting user; must own the project

        Returns:
            PipelineResult with the number of connections inserted

        Raises:
            NotFoundError: Project missing or not owned by user_id
            StoreWriteError: Batch insert failed
        """
        result = PipelineResult(run_id=str(uuid4()))
        project_id = str(project_id)

        project = await self.store.get_owned_project(project_id, str(user_id))
        if not project:
            raise NotFoundError("Project not found")

        entries = await self.store.list_project_entries(project_id, BULK_CONNECT_POOL_SIZE)
        clusters = self.bulk_strategy.cluster(entries)
        result.clusters = len(clusters)
        if not clusters:
            log_with_context(logger, logging.INFO, "Bulk connect skipped: fewer than 2 entries",
                             run_id=result.run_id, project_id=project_id, entries=len(entries))
            return result

        log_with_context(
            logger,
            logging.INFO,
            "Bulk connect started",
            run_id=result.run_id,
            project_id=project_id,
            entries=len(entries),
            clusters=",".join(f"{c.label}:{len(c)}" for c in clusters),
        )

        requests = [
            ClusterRequest(
                cluster=cluster,
                prompt=build_bulk_connections_user_prompt(cluster.entries),
                allowed_ids=set(cluster.entry_ids),
            )
            for cluster in clusters
        ]
        candidates = await extract_connections(
            self.generator,
            requests,
            self.settings.BULK_CONNECT_MAX_TOKENS,
            timeout=self.settings.CLUSTER_CALL_TIMEOUT_SECONDS,
            run_id=result.run_id,
        )
        result.candidates = len(candidates)

        admitted = admit_candidates(candidates)
        if not admitted:
            return self._finish(result, admitted=0, rows=[])

        # Candidate ids are confined to fetched entries, so this covers every
        # stored connection a candidate could collide with
        existing = await self.store.list_connections_touching([e.id for e in entries])
        rows = build_connection_rows(admitted, existing)
        return await self._persist(result, admitted=len(admitted), rows=rows)

    # ------------------------------------------------------------------
    # Streamed suggestions (preview only, nothing persisted)
    # ------------------------------------------------------------------

    async def prepare_suggestions(self, entry_id: str, user_id: str) -> SuggestionContext:
        """
        Load the entry and its comparison pool for a suggestion stream.

        Raises:
            NotFoundError: Entry missing or not owned by user_id
        """
        entry = await self._get_owned_entry(str(entry_id), str(user_id))
        if not _has_content(entry):
            return SuggestionContext(entry=entry)

        pool = await self.store.list_project_entries(
            entry.project_id, SUGGEST_POOL_SIZE, exclude_entry_id=entry.id
        )
        return SuggestionContext(entry=entry, pool=pool)

    async def stream_suggestions(self, context: SuggestionContext) -> AsyncIterator[dict[str, Any]]:
        """
        Stream model output for one entry, then its parsed suggestions.

        Yields event dicts: {"type": "delta", "text"} per chunk, then either
        {"type": "result", "data": {"connections": [...]}} or
        {"type": "error", "error"}.
        """
        if not context.has_work:
            yield {"type": "result", "data": {"connections": []}}
            return

        prompt = build_connections_user_prompt(context.entry, context.pool)
        full_text = ""

        try:
            async for chunk in self.generator.stream(
                CONNECTIONS_SYSTEM, prompt, self.settings.SUGGEST_MAX_TOKENS
            ):
                full_text += chunk
                yield {"type": "delta", "text": chunk}
        except Exception as e:
            logger.warning(f"Suggestion stream failed for entry {context.entry.id}: {e}")
            yield {"type": "error", "error": "Connection analysis failed"}
            return

        parsed = parse_connections_output(full_text)
        if not parsed.ok:
            logger.warning(f"Unparseable suggestions for entry {context.entry.id}: {parsed.error}")
            yield {"type": "error", "error": "Failed to parse AI response as JSON"}
            return

        admitted = admit_candidates(filter_known_ids(parsed.candidates, context.allowed_ids))
        suggestions = [
            to_connection_row(c).model_dump(mode="json", exclude={"status"}) for c in admitted
        ]
        yield {"type": "result", "data": {"connections": suggestions}}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_owned_entry(self, entry_id: str, user_id: str) -> Entry:
        entry = await self.store.get_entry(entry_id)
        if entry is None or not entry.project_id:
            raise NotFoundError("Entry not found")

        project = await self.store.get_owned_project(entry.project_id, user_id)
        if not project:
            raise NotFoundError("Entry not found")
        return entry

    async def _persist(
        self,
        result: PipelineResult,
        admitted: int,
        rows: list[ConnectionRow],
    ) -> PipelineResult:
        if rows:
            result.connections_found = await self.store.insert_connections(
                [row.to_insert() for row in rows]
            )
        return self._finish(result, admitted=admitted, rows=rows)

    def _finish(self, result: PipelineResult, admitted: int, rows: list[ConnectionRow]) -> PipelineResult:
        log_with_context(
            logger,
            logging.INFO,
            "Connection pipeline complete",
            run_id=result.run_id,
            clusters=result.clusters,
            candidates=result.candidates,
            admitted=admitted,
            new=len(rows),
            inserted=result.connections_found,
        )
        return result
