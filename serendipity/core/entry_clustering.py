"""Entry clustering for connection discovery.

Splits candidate entries into disjoint clusters, each sent to the model as one
prompt. Clustering bounds the number of pairs per call and keeps each prompt
topically coherent. Two strategies exist because the two call sites differ in
caps, fallbacks, and input shape:

- BulkTagClusterStrategy: project-wide scan, clusters by the largest tag groups
- IncrementalTagClusterStrategy: one new entry against its project's recent pool

Zero LLM cost: tag bookkeeping only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence

from serendipity.core.schemas_connections import Entry

# Max entries per cluster sent to the model
MAX_CLUSTER_SIZE = 30

# Bulk strategy: how many tag groups become their own cluster
MAX_TAG_GROUPS = 3

# A bulk cluster needs at least one pair to compare
MIN_BULK_CLUSTER_SIZE = 2


@dataclass
class EntryCluster:
    """A bounded group of entries sent together in one generation call."""

    label: str  # "tag:<name>", "tag_matched", "general", or "fallback"
    entries: list[Entry] = field(default_factory=list)

    @property
    def entry_ids(self) -> list[str]:
        return [e.id for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class ClusterStrategy(Protocol):
    """Partition candidates (optionally relative to a focal entry) into clusters."""

    name: str

    def cluster(self, candidates: Sequence[Entry], focus: Entry | None = None) -> list[EntryCluster]: ...


class BulkTagClusterStrategy:
    """Cluster a whole project by its largest shared-tag groups.

    1. Map each tag to the entries carrying it
    2. Keep the top 3 groups with at least 2 members, largest first
    3. Drop entries already claimed by an earlier group, cap at 30
    4. Unclaimed entries form one "general" cluster
    5. If nothing qualified, fall back to the first 30 entries
    """

    name = "bulk"

    def cluster(self, candidates: Sequence[Entry], focus: Entry | None = None) -> list[EntryCluster]:
        if len(candidates) < MIN_BULK_CLUSTER_SIZE:
            return []

        tag_groups: dict[str, list[Entry]] = {}
        for entry in candidates:
            # An entry tagged twice with the same label counts once
            for tag in dict.fromkeys(entry.tags):
                tag_groups.setdefault(tag, []).append(entry)

        # sorted() is stable: equal-sized groups keep first-seen tag order
        ranked = sorted(
            (item for item in tag_groups.items() if len(item[1]) >= MIN_BULK_CLUSTER_SIZE),
            key=lambda item: len(item[1]),
            reverse=True,
        )[:MAX_TAG_GROUPS]

        clusters: list[EntryCluster] = []
        claimed: set[str] = set()

        for tag, group in ranked:
            members = [e for e in group if e.id not in claimed][:MAX_CLUSTER_SIZE]
            if len(members) < MIN_BULK_CLUSTER_SIZE:
                continue
            clusters.append(EntryCluster(label=f"tag:{tag}", entries=members))
            claimed.update(e.id for e in members)

        general = [e for e in candidates if e.id not in claimed][:MAX_CLUSTER_SIZE]
        if len(general) >= MIN_BULK_CLUSTER_SIZE:
            clusters.append(EntryCluster(label="general", entries=general))

        if not clusters:
            clusters.append(EntryCluster(label="fallback", entries=list(candidates[:MAX_CLUSTER_SIZE])))

        return clusters


class IncrementalTagClusterStrategy:
    """Split a focal entry's comparison pool by tag overlap with the focus.

    Entries sharing at least one tag with the focus go to "tag_matched", the
    rest to "general". A focus without tags never produces a tag_matched
    cluster. Empty clusters are skipped.
    """

    name = "incremental"

    def cluster(self, candidates: Sequence[Entry], focus: Entry | None = None) -> list[EntryCluster]:
        pool = [e for e in candidates if focus is None or e.id != focus.id]
        if not pool:
            return []

        focus_tags = set(focus.tags) if focus else set()
        tag_matched: list[Entry] = []
        general: list[Entry] = []

        for entry in pool:
            if focus_tags and focus_tags.intersection(entry.tags):
                tag_matched.append(entry)
            else:
                general.append(entry)

        clusters: list[EntryCluster] = []
        if tag_matched:
            clusters.append(EntryCluster(label="tag_matched", entries=tag_matched))
        if general:
            clusters.append(EntryCluster(label="general", entries=general))
        if not clusters:
            clusters.append(EntryCluster(label="fallback", entries=pool))

        return clusters
