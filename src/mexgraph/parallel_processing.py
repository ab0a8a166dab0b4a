#!/usr/bin/env python3
"""
Parallel processing utilities for the meta-expression graph pipeline.
Runs a pass over record chunks either sequentially or sharded across a
thread pool, always handing results back in chunk order.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Iterator, List, Optional, TypeVar

from .aggregation import (
    EdgeAggregator,
    NodeIndex,
    count_record_pairs,
    index_records,
    pair_counts_for_records,
)
from .config import CONFIG
from .text_processing import PostRecord, TagExtractor

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def ordered_parallel_map(func: Callable[[T], R], items: Iterable[T],
                         max_workers: int, max_pending: Optional[int] = None) -> Iterator[R]:
    """
    Map func over items on a thread pool, yielding results in input order.

    At most `max_pending` items are in flight, so a large stream of chunks is
    never materialized up front.
    """
    max_pending = max(max_pending or max_workers * 2, 1)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        pending = deque()
        for item in items:
            pending.append(executor.submit(func, item))
            if len(pending) >= max_pending:
                yield pending.popleft().result()
        while pending:
            yield pending.popleft().result()


def _use_parallel(settings: dict) -> bool:
    return bool(settings.get("enable_parallel")) and settings.get("max_workers", 1) > 1


def build_node_index(chunks: Iterable[List[PostRecord]], extractor: TagExtractor,
                     settings: Optional[dict] = None) -> NodeIndex:
    """Pass one: count tags over all chunks, merging shard indexes in chunk order."""
    settings = settings or CONFIG
    if not _use_parallel(settings):
        index = NodeIndex()
        for records in chunks:
            index_records(records, extractor, index)
        return index

    max_workers = settings["max_workers"]
    logger.info(f"Indexing nodes with {max_workers} workers")

    def index_shard(records: List[PostRecord]):
        local = extractor.clone()
        return index_records(records, local), local

    index = NodeIndex()
    for shard_index, shard_extractor in ordered_parallel_map(
            index_shard, chunks, max_workers, settings.get("max_pending_chunks")):
        index.merge(shard_index)
        extractor.merge_stats(shard_extractor)
    return index


def build_edge_aggregator(chunks: Iterable[List[PostRecord]], extractor: TagExtractor,
                          nodes: NodeIndex, settings: Optional[dict] = None) -> EdgeAggregator:
    """Pass two: count co-occurring retained node ids over all chunks."""
    settings = settings or CONFIG
    edges = EdgeAggregator()
    if not _use_parallel(settings):
        for records in chunks:
            count_record_pairs(records, extractor, nodes, edges)
        return edges

    max_workers = settings["max_workers"]
    logger.info(f"Counting edges with {max_workers} workers")

    def count_shard(records: List[PostRecord]):
        local = extractor.clone()
        return pair_counts_for_records(records, local, nodes), local

    for pair_counts, shard_extractor in ordered_parallel_map(
            count_shard, chunks, max_workers, settings.get("max_pending_chunks")):
        edges.update(pair_counts)
        extractor.merge_stats(shard_extractor)
    return edges
