#!/usr/bin/env python3
"""
Aggregation structures for the meta-expression graph pipeline.
Pass one counts tags into a NodeIndex; pass two counts co-occurring pairs of
retained node ids into an EdgeAggregator.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .exceptions import FrozenIndexError
from .text_processing import PostRecord, Tag, TagExtractor

logger = logging.getLogger(__name__)

EdgeKey = Tuple[int, int]


class NodeEntry(NamedTuple):
    tag: Tag
    id: int
    count: int


class NodeIndex:
    """
    Insertion-ordered store of distinct tags.

    Each tag gets a dense id at first sight (0, 1, 2, ...). Ids never change
    while the entry lives; retention only removes entries. Dicts keep
    insertion order, so iterating the id maps walks ids in ascending order.
    """

    def __init__(self):
        self._ids: Dict[Tag, int] = {}
        self._tags: Dict[int, Tag] = {}
        self._counts: Dict[int, int] = {}
        self._next_id = 0
        self._frozen = False

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, tag: Tag) -> bool:
        return tag in self._ids

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def total_observations(self) -> int:
        return sum(self._counts.values())

    def _check_mutable(self):
        if self._frozen:
            raise FrozenIndexError("NodeIndex is frozen and can no longer change")

    def observe(self, tag: Tag, count: int = 1) -> int:
        """Count one (or `count`) occurrences of tag and return its id."""
        self._check_mutable()
        node_id = self._ids.get(tag)
        if node_id is None:
            node_id = self._next_id
            self._next_id += 1
            self._ids[tag] = node_id
            self._tags[node_id] = tag
            self._counts[node_id] = count
        else:
            self._counts[node_id] += count
        return node_id

    def observe_all(self, tags: Iterable[Tag]) -> None:
        for tag in tags:
            self.observe(tag)

    def lookup(self, tag: Tag) -> Optional[int]:
        return self._ids.get(tag)

    def tag_of(self, node_id: int) -> Tag:
        return self._tags[node_id]

    def count_of(self, node_id: int) -> int:
        return self._counts[node_id]

    def retain_min_count(self, threshold: int) -> int:
        """Remove entries counted fewer than threshold times; returns how many went."""
        self._check_mutable()
        doomed = [node_id for node_id, count in self._counts.items() if count < threshold]
        for node_id in doomed:
            del self._ids[self._tags.pop(node_id)]
            del self._counts[node_id]
        logger.debug(f"Dropped {len(doomed):,} nodes counted fewer than {threshold} times")
        return len(doomed)

    def merge(self, other: "NodeIndex") -> None:
        """
        Add another index's counts to this one.

        Entries of `other` are folded in its id order, so merging the indexes
        of consecutive record chunks in chunk order assigns the same ids a
        single sequential pass would.
        """
        self._check_mutable()
        for tag, _, count in other.entries():
            self.observe(tag, count)

    def freeze(self) -> "NodeIndex":
        """Make the index read-only; it becomes the lookup oracle for pass two."""
        self._frozen = True
        return self

    def entries(self) -> Iterator[NodeEntry]:
        for node_id, tag in self._tags.items():
            yield NodeEntry(tag, node_id, self._counts[node_id])

    def entries_by_descending_count(self) -> List[NodeEntry]:
        # stable sort, equal counts keep first-seen order
        return sorted(self.entries(), key=lambda entry: -entry.count)

    def ids_for(self, tags: Iterable[Tag]) -> List[int]:
        """Ids of the tags still present, in input order, duplicates kept."""
        ids = self._ids
        return [ids[tag] for tag in tags if tag in ids]


class EdgeAggregator:
    """Counts unordered pairs of node ids that appear in the same record."""

    def __init__(self):
        self._counts: Dict[EdgeKey, int] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, key: EdgeKey) -> bool:
        return key in self._counts

    @property
    def total_pairs(self) -> int:
        return sum(self._counts.values())

    def observe_record(self, ids: Sequence[int]) -> None:
        """
        Count every positional pair of ids in one record.

        Repeated ids are not collapsed, so a tag occurring twice pairs twice
        with each other tag; an id is never paired with itself.
        """
        counts = self._counts
        n = len(ids)
        for i in range(n - 1):
            a = ids[i]
            for j in range(i + 1, n):
                b = ids[j]
                if a == b:
                    continue
                key = (a, b) if a < b else (b, a)
                counts[key] = counts.get(key, 0) + 1

    def update(self, pair_counts: Mapping[EdgeKey, int]) -> None:
        """Add partial pair counts produced for one shard of the input."""
        counts = self._counts
        for key, count in pair_counts.items():
            counts[key] = counts.get(key, 0) + count

    def count_of(self, a: int, b: int) -> int:
        key = (a, b) if a < b else (b, a)
        return self._counts.get(key, 0)

    def retain_min_count(self, threshold: int) -> int:
        """Remove edges counted fewer than threshold times; returns how many went."""
        doomed = [key for key, count in self._counts.items() if count < threshold]
        for key in doomed:
            del self._counts[key]
        logger.debug(f"Dropped {len(doomed):,} edges counted fewer than {threshold} times")
        return len(doomed)

    def items(self) -> Iterator[Tuple[EdgeKey, int]]:
        return iter(self._counts.items())


def index_records(records: Iterable[PostRecord], extractor: TagExtractor,
                  index: Optional[NodeIndex] = None) -> NodeIndex:
    """Pass one over a batch of records: count every extracted tag."""
    index = index if index is not None else NodeIndex()
    for record in records:
        index.observe_all(extractor.extract(record))
    return index


def count_record_pairs(records: Iterable[PostRecord], extractor: TagExtractor,
                       nodes: NodeIndex, edges: Optional[EdgeAggregator] = None) -> EdgeAggregator:
    """Pass two over a batch of records: count pairs of retained node ids."""
    edges = edges if edges is not None else EdgeAggregator()
    for record in records:
        ids = nodes.ids_for(extractor.extract(record))
        if len(ids) > 1:
            edges.observe_record(ids)
    return edges


def pair_counts_for_records(records: Iterable[PostRecord], extractor: TagExtractor,
                            nodes: NodeIndex) -> Dict[EdgeKey, int]:
    """Shard-local variant of count_record_pairs returning plain pair counts."""
    partial = count_record_pairs(records, extractor, nodes)
    return dict(partial.items())
