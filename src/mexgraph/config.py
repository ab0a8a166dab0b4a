#!/usr/bin/env python3
"""
Configuration module for the meta-expression co-occurrence graph pipeline.
Contains thresholds, performance profiles, paths, the input/output schema and
loading of the emoticon -> emoji mapping.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import emoji
import psutil

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# -----------------------------
# Retention Thresholds
# -----------------------------
MIN_NODE_COUNT = 10  # nodes seen fewer times are dropped before pass two
MIN_EDGE_COUNT = 3   # edges seen fewer times are dropped before emission

# -----------------------------
# Performance Configuration
# -----------------------------
PERFORMANCE_MODE = "BALANCED"  # Options: "LOW_MEMORY", "BALANCED", "PARALLEL"
MAX_WORKERS = min(4, (psutil.cpu_count() or 1))

PERF_CONFIGS = {
    "LOW_MEMORY": {
        "chunk_size": 20_000,
        "enable_parallel": False,
        "max_workers": 1,
        "max_pending_chunks": 1,
    },
    "BALANCED": {
        "chunk_size": 100_000,
        "enable_parallel": False,
        "max_workers": 1,
        "max_pending_chunks": 1,
    },
    "PARALLEL": {
        "chunk_size": 100_000,
        "enable_parallel": True,
        "max_workers": MAX_WORKERS,
        "max_pending_chunks": MAX_WORKERS * 2,
    },
}

CONFIG = PERF_CONFIGS[PERFORMANCE_MODE]

# -----------------------------
# Directory Paths
# -----------------------------
PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_EMOTICON_MAP_PATH = PACKAGE_DIR / "data" / "emoticon_emoji.json"
DEFAULT_OUTPUT_DIR = Path("output")

# -----------------------------
# Input / Output Schema
# -----------------------------
SOURCE_COLUMNS = ["year", "sequence_number", "emoji_tokens", "emoticon_tokens", "hashtag_tokens"]
NODE_TABLE_COLUMNS = ["row_id", "node_type", "text", "weight"]
EDGE_TABLE_COLUMNS = ["node_1", "node_2", "weight"]

NODES_FILENAME = "nodes.tsv"
EDGES_FILENAME = "edges.tsv"
SUMMARY_FILENAME = "run_summary.json"

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def get_default_config() -> Dict:
    """Default pipeline settings, one flat dict like the performance profiles."""
    return {
        "performance_mode": PERFORMANCE_MODE,
        **PERF_CONFIGS[PERFORMANCE_MODE],
        "min_node_count": MIN_NODE_COUNT,
        "min_edge_count": MIN_EDGE_COUNT,
        "replace_emoticons_and_ignore_hashtags": False,
        "emoticon_map_path": str(DEFAULT_EMOTICON_MAP_PATH),
        "output_dir": str(DEFAULT_OUTPUT_DIR),
        "show_progress": True,
    }


def load_config(config_path: Union[str, Path]) -> Dict:
    """Load pipeline overrides from a JSON file."""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")

    if "performance_mode" in data:
        mode = data["performance_mode"]
        if mode not in PERF_CONFIGS:
            raise ConfigError(f"Unknown performance mode {mode!r}; expected one of {sorted(PERF_CONFIGS)}")
        # profile values first so explicit keys in the file still win
        data = {**PERF_CONFIGS[mode], **data}
    return data


def _resolve_emoji_value(value: str) -> Optional[str]:
    """Turn a mapping value (literal emoji or :alias:) into canonical emoji text."""
    from .text_processing import clean_emoji

    resolved = emoji.emojize(value, language="alias")
    if not emoji.emoji_count(resolved):
        return None
    return clean_emoji(resolved)


def load_emoticon_map(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """
    Load the emoticon -> emoji mapping used by the replace-emoticons policy.

    The file is a JSON object of emoticon strings to emoji. Values may be
    literal emoji or shortcodes such as ":slightly_smiling_face:". Every value
    is canonicalized the same way emoji tokens are, so a mapped emoticon and
    a typed emoji end up on the same node.
    """
    path = Path(path) if path else DEFAULT_EMOTICON_MAP_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load emoticon map from {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Emoticon map {path} must contain a JSON object")

    mapping: Dict[str, str] = {}
    for emoticon, value in raw.items():
        if not emoticon or not isinstance(value, str):
            logger.warning(f"Skipping malformed emoticon map entry {emoticon!r}: {value!r}")
            continue
        resolved = _resolve_emoji_value(value)
        if resolved is None:
            logger.warning(f"Skipping emoticon {emoticon!r}: {value!r} is not an emoji")
            continue
        mapping[emoticon] = resolved

    logger.info(f"Loaded {len(mapping)} emoticon mappings from {path}")
    return mapping
