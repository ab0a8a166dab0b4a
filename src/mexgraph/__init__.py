"""
Meta-expression co-occurrence graph

This package turns post records carrying emoji, emoticon and hashtag tokens
into a weighted co-occurrence graph:

- config: thresholds, performance profiles, emoticon map loading
- text_processing: emoji canonicalization and tag extraction
- data_loading: chunked streaming of the source CSV
- aggregation: NodeIndex (pass one) and EdgeAggregator (pass two)
- parallel_processing: optional sharded execution of each pass
- reporting: sorted node/edge tables and the run summary
- pipeline: the two-pass orchestrator
"""

__version__ = "1.0.0"

from .config import CONFIG, MIN_EDGE_COUNT, MIN_NODE_COUNT, load_emoticon_map
from .text_processing import ExtractionPolicy, PostRecord, Tag, TagCategory, TagExtractor, clean_emoji, extract_tags
from .aggregation import EdgeAggregator, NodeIndex
from .reporting import build_edge_table, build_node_table, emit_graph
from .pipeline import GraphPipeline, GraphResult, build_graph
from .exceptions import ConfigError, EmissionError, FrozenIndexError, MexGraphError, SourceReadError

__all__ = [
    'CONFIG', 'MIN_EDGE_COUNT', 'MIN_NODE_COUNT', 'load_emoticon_map',
    'ExtractionPolicy', 'PostRecord', 'Tag', 'TagCategory', 'TagExtractor', 'clean_emoji', 'extract_tags',
    'EdgeAggregator', 'NodeIndex',
    'build_edge_table', 'build_node_table', 'emit_graph',
    'GraphPipeline', 'GraphResult', 'build_graph',
    'ConfigError', 'EmissionError', 'FrozenIndexError', 'MexGraphError', 'SourceReadError',
]
