#!/usr/bin/env python3
"""
Reporting module for the meta-expression graph pipeline.
Builds the sorted node and edge tables, writes them atomically as TSV and
records a JSON run summary.
"""

import csv
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .aggregation import EdgeAggregator, NodeIndex
from .config import (
    EDGE_TABLE_COLUMNS, EDGES_FILENAME, NODE_TABLE_COLUMNS,
    NODES_FILENAME, SUMMARY_FILENAME,
)
from .exceptions import EmissionError

logger = logging.getLogger(__name__)


def build_node_table(nodes: NodeIndex) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Node table sorted by descending weight with 1-based row ids.

    Also returns `row_of`, an array indexed by internal node id holding the
    output row id (0 for ids that are not in the table).
    """
    entries = nodes.entries_by_descending_count()
    node_df = pd.DataFrame({
        "row_id": np.arange(1, len(entries) + 1, dtype=np.int64),
        "node_type": [entry.tag.category.value for entry in entries],
        "text": [entry.tag.text for entry in entries],
        "weight": np.array([entry.count for entry in entries], dtype=np.int64),
    }, columns=NODE_TABLE_COLUMNS)

    ids = np.array([entry.id for entry in entries], dtype=np.int64)
    row_of = np.zeros(int(ids.max()) + 1 if len(ids) else 0, dtype=np.int64)
    row_of[ids] = node_df["row_id"].to_numpy()
    return node_df, row_of


def build_edge_table(edges: EdgeAggregator, row_of: np.ndarray) -> pd.DataFrame:
    """Edge table with endpoints as node row ids, node_1 < node_2, heaviest first."""
    items = list(edges.items())
    if not items:
        return pd.DataFrame({col: pd.Series(dtype=np.int64) for col in EDGE_TABLE_COLUMNS})

    keys = np.array([key for key, _ in items], dtype=np.int64)
    weights = np.array([count for _, count in items], dtype=np.int64)

    rows_a = row_of[keys[:, 0]]
    rows_b = row_of[keys[:, 1]]
    if (rows_a == 0).any() or (rows_b == 0).any():
        raise EmissionError("Edge endpoint missing from the node table")

    edge_df = pd.DataFrame({
        "node_1": np.minimum(rows_a, rows_b),
        "node_2": np.maximum(rows_a, rows_b),
        "weight": weights,
    }, columns=EDGE_TABLE_COLUMNS)
    return edge_df.sort_values(
        ["weight", "node_1", "node_2"], ascending=[False, True, True]
    ).reset_index(drop=True)


def _temp_path(output_dir: Path, filename: str, suffix: str = ".tmp") -> Path:
    fd, name = tempfile.mkstemp(prefix=f".{filename}.", suffix=suffix, dir=output_dir)
    os.close(fd)
    return Path(name)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")


def _roll_back(targets: Dict[str, Path], installed: List[str], backups: Dict[str, Path]) -> None:
    """Put the output directory back the way the previous run left it."""
    for name in installed:
        if name not in backups:
            _discard(targets[name])
    for name, backup in backups.items():
        try:
            os.replace(backup, targets[name])
        except OSError as e:
            logger.error(f"Could not restore previous {targets[name]} from {backup}: {e}")


def write_tables(node_df: pd.DataFrame, edge_df: pd.DataFrame,
                 output_dir: Union[str, Path]) -> Dict[str, Path]:
    """
    Write both tables or neither.

    Each table goes to a temporary file next to its destination. Tables left
    by an earlier run are moved aside before the new ones are moved into
    place, and moved back if any step fails, so the directory never holds a
    node table from one run beside an edge table from another.

    Fields containing a tab, double quote or line break are quoted CSV-style
    (quotes doubled), so every tag reads back unchanged with a tab-separated
    CSV reader.
    """
    output_dir = Path(output_dir)
    targets = {"nodes": output_dir / NODES_FILENAME, "edges": output_dir / EDGES_FILENAME}
    frames = {"nodes": node_df, "edges": edge_df}
    temps: Dict[str, Path] = {}
    spares: List[Path] = []
    backups: Dict[str, Path] = {}
    installed: List[str] = []

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, target in targets.items():
            temps[name] = _temp_path(output_dir, target.name)
            frames[name].to_csv(temps[name], sep="\t", index=False, encoding="utf-8",
                                quoting=csv.QUOTE_MINIMAL)
        for name, target in targets.items():
            if target.exists():
                spare = _temp_path(output_dir, target.name, suffix=".bak")
                spares.append(spare)
                os.replace(target, spare)
                backups[name] = spare
        for name, target in targets.items():
            os.replace(temps[name], target)
            installed.append(name)
    except OSError as e:
        _roll_back(targets, installed, backups)
        for path in [*temps.values(), *spares]:
            _discard(path)
        raise EmissionError(f"Failed to write graph tables to {output_dir}: {e}") from e

    for spare in spares:
        _discard(spare)

    logger.info(f"✅ Wrote {len(node_df):,} nodes -> {targets['nodes']}")
    logger.info(f"✅ Wrote {len(edge_df):,} edges -> {targets['edges']}")
    return targets


def emit_graph(nodes: NodeIndex, edges: EdgeAggregator,
               output_dir: Union[str, Path]) -> Dict[str, Path]:
    """Build and write the node and edge tables."""
    node_df, row_of = build_node_table(nodes)
    edge_df = build_edge_table(edges, row_of)
    return write_tables(node_df, edge_df, output_dir)


def write_run_summary(summary: Dict[str, Any], output_dir: Union[str, Path]) -> Optional[Path]:
    """Write the JSON run summary. Failures are logged, never fatal."""
    report = {
        "report_type": "meta_expression_graph",
        "generated_timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        **summary,
    }
    path = Path(output_dir) / SUMMARY_FILENAME
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error(f"Failed to write run summary to {path}: {e}")
        return None

    logger.info(f"📊 Run summary saved to: {path}")
    return path
