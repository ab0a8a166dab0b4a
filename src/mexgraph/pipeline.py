#!/usr/bin/env python3
"""
Two-pass meta-expression graph pipeline.

1. Pass one - count every tag of every record into a NodeIndex
2. Node retention - drop rare tags, freeze the index
3. Pass two - re-read the source, count pairs of retained node ids
4. Edge retention - drop rare pairs
5. Emission - write nodes.tsv, edges.tsv and run_summary.json
"""

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Union

import psutil

from .aggregation import EdgeAggregator, NodeIndex
from .config import PERF_CONFIGS, PERFORMANCE_MODE, get_default_config, load_emoticon_map
from .data_loading import get_file_size_mb, iter_record_chunks
from .exceptions import ConfigError
from .parallel_processing import build_edge_aggregator, build_node_index
from .reporting import emit_graph, write_run_summary
from .text_processing import ExtractionPolicy, TagExtractor

logger = logging.getLogger(__name__)

UNMAPPED_REPORT_LIMIT = 20


def current_memory_mb() -> float:
    return psutil.Process().memory_info().rss / (1024 * 1024)


class GraphResult(NamedTuple):
    nodes: NodeIndex
    edges: EdgeAggregator
    outputs: Dict[str, Path]
    summary: Dict[str, Any]


class GraphPipeline:
    """
    Pipeline orchestrator for the meta-expression co-occurrence graph.
    Owns nothing between runs; each run builds its own index and aggregator
    and hands them to emission.
    """

    def __init__(self, config: Optional[Dict] = None, emoticon_map: Optional[Dict[str, str]] = None):
        """
        Initialize the pipeline

        Args:
            config: Overrides for the default settings (see config.get_default_config)
            emoticon_map: Emoticon -> emoji mapping; loaded from
                config["emoticon_map_path"] when the replace policy needs it
        """
        config = dict(config or {})
        mode = config.get("performance_mode", PERFORMANCE_MODE)
        if mode not in PERF_CONFIGS:
            raise ConfigError(f"Unknown performance mode {mode!r}; expected one of {sorted(PERF_CONFIGS)}")
        self.config = {**get_default_config(), **PERF_CONFIGS[mode], **config}
        self.policy = ExtractionPolicy.from_flag(self.config["replace_emoticons_and_ignore_hashtags"])

        if emoticon_map is None and self.policy is ExtractionPolicy.REPLACE_EMOTICONS_IGNORE_HASHTAGS:
            emoticon_map = load_emoticon_map(self.config["emoticon_map_path"])
        self.emoticon_map = emoticon_map or {}

        self.stage_times: Dict[str, float] = {}
        self.peak_memory_mb = 0.0
        self.node_counts: Dict[str, int] = {}
        self.edge_counts: Dict[str, int] = {}
        self.records_read: Dict[str, int] = {}
        self.unmapped_emoticons: Counter = Counter()

    def _extractor(self) -> TagExtractor:
        return TagExtractor(self.emoticon_map, self.policy)

    def _chunks(self, source: Path, desc: str, stage: str):
        self.records_read[stage] = 0
        for records in iter_record_chunks(
                source,
                chunk_size=self.config["chunk_size"],
                desc=desc,
                show_progress=self.config["show_progress"]):
            self.records_read[stage] += len(records)
            yield records

    def _finish_stage(self, name: str, started: float) -> None:
        self.stage_times[name] = round(time.time() - started, 3)
        memory_mb = current_memory_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)
        logger.info(f"Stage {name} finished in {self.stage_times[name]:.1f}s, memory {memory_mb:.0f}MB")

    def _report_unmapped(self, extractor: TagExtractor) -> None:
        if not extractor.unmapped_emoticons:
            return
        total = sum(extractor.unmapped_emoticons.values())
        top = extractor.unmapped_emoticons.most_common(5)
        logger.warning(
            f"{total:,} emoticon tokens ({len(extractor.unmapped_emoticons):,} distinct) had no emoji mapping; "
            f"most common: {', '.join(f'{tok!r} x{n}' for tok, n in top)}"
        )

    def count_nodes(self, source: Path) -> NodeIndex:
        """Pass one plus node retention; returns the frozen node oracle."""
        logger.info("🔄 Pass 1: counting meta-expressions")
        started = time.time()
        extractor = self._extractor()
        nodes = build_node_index(self._chunks(source, "Pass 1 (nodes)", "pass_1"), extractor, self.config)

        self.node_counts = {"total": len(nodes), "observations": nodes.total_observations}
        logger.info(f"total nodes: {len(nodes):,}")
        nodes.retain_min_count(self.config["min_node_count"])
        self.node_counts["retained"] = len(nodes)
        logger.info(f"total nodes after filtering: {len(nodes):,}")

        self._report_unmapped(extractor)
        self.unmapped_emoticons = extractor.unmapped_emoticons
        self._finish_stage("pass_1", started)
        return nodes.freeze()

    def count_edges(self, source: Path, nodes: NodeIndex) -> EdgeAggregator:
        """Pass two plus edge retention."""
        logger.info("🔄 Pass 2: counting co-occurrences")
        started = time.time()
        extractor = self._extractor()
        edges = build_edge_aggregator(self._chunks(source, "Pass 2 (edges)", "pass_2"), extractor, nodes, self.config)

        self.edge_counts = {"total": len(edges), "pair_observations": edges.total_pairs}
        logger.info(f"total edges: {len(edges):,}")
        edges.retain_min_count(self.config["min_edge_count"])
        self.edge_counts["retained"] = len(edges)
        logger.info(f"total edges after filtering: {len(edges):,}")

        self._finish_stage("pass_2", started)
        return edges

    def build_summary(self, source: Path) -> Dict[str, Any]:
        return {
            "input_path": str(source),
            "input_size_mb": round(get_file_size_mb(source), 2),
            "policy": self.policy.value,
            "performance_mode": self.config["performance_mode"],
            "parallel": bool(self.config["enable_parallel"]),
            "thresholds": {
                "min_node_count": self.config["min_node_count"],
                "min_edge_count": self.config["min_edge_count"],
            },
            "records_read": self.records_read,
            "nodes": self.node_counts,
            "edges": self.edge_counts,
            "unmapped_emoticons": dict(self.unmapped_emoticons.most_common(UNMAPPED_REPORT_LIMIT)),
            "stage_seconds": self.stage_times,
            "peak_memory_mb": round(self.peak_memory_mb, 1),
        }

    def run(self, source: Union[str, Path], output_dir: Optional[Union[str, Path]] = None) -> GraphResult:
        """
        Run both passes and write the graph tables.

        Args:
            source: Path to the source CSV
            output_dir: Where nodes.tsv / edges.tsv go; defaults to config["output_dir"]
        """
        source = Path(source)
        output_dir = Path(output_dir or self.config["output_dir"])
        logger.info(f"🚀 Building meta-expression graph from {source} ({self.policy.value} policy)")

        nodes = self.count_nodes(source)
        edges = self.count_edges(source, nodes)

        started = time.time()
        outputs = emit_graph(nodes, edges, output_dir)
        self._finish_stage("emit", started)

        summary = self.build_summary(source)
        summary_path = write_run_summary(summary, output_dir)
        if summary_path is not None:
            outputs["summary"] = summary_path

        return GraphResult(nodes, edges, outputs, summary)


def build_graph(source: Union[str, Path], output_dir: Union[str, Path],
                replace_emoticons_and_ignore_hashtags: bool = False,
                emoticon_map: Optional[Dict[str, str]] = None, **overrides) -> GraphResult:
    """Functional entry point: one pipeline run with the given settings."""
    config = {"replace_emoticons_and_ignore_hashtags": replace_emoticons_and_ignore_hashtags, **overrides}
    return GraphPipeline(config, emoticon_map=emoticon_map).run(source, output_dir)
