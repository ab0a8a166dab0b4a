#!/usr/bin/env python3
"""
Data loading module for the meta-expression graph pipeline.
Streams the source CSV in chunks so neither pass holds the corpus in memory.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

import pandas as pd
from tqdm import tqdm

from .config import CONFIG, SOURCE_COLUMNS
from .exceptions import SourceReadError
from .text_processing import PostRecord

logger = logging.getLogger(__name__)

TOKEN_COLUMNS = SOURCE_COLUMNS[2:]


def get_file_size_mb(path: Union[str, Path]) -> float:
    """Source file size in MB."""
    return Path(path).stat().st_size / (1024 * 1024)


def _standardize_chunk(chunk: pd.DataFrame) -> pd.DataFrame:
    """Name positional columns by the fixed schema, reject short rows and coerce types."""
    if chunk.shape[1] != len(SOURCE_COLUMNS):
        raise SourceReadError(
            f"Expected {len(SOURCE_COLUMNS)} columns ({', '.join(SOURCE_COLUMNS)}), got {chunk.shape[1]}"
        )

    chunk = chunk.copy()
    chunk.columns = SOURCE_COLUMNS

    # with keep_default_na=False an empty cell is '', so NaN means the row ran out of fields
    short_rows = chunk[TOKEN_COLUMNS].isna().any(axis=1)
    if short_rows.any():
        first = int(short_rows.idxmax())
        raise SourceReadError(
            f"Data row {first + 1} has fewer than {len(SOURCE_COLUMNS)} fields"
        )

    # year and sequence number are informational; bad values become null
    for col in ("year", "sequence_number"):
        numeric = pd.to_numeric(chunk[col], errors='coerce')
        chunk[col] = numeric.where(numeric % 1 == 0).astype('Int64')
    for col in TOKEN_COLUMNS:
        chunk[col] = chunk[col].astype(str)

    return chunk


def chunk_to_records(chunk: pd.DataFrame) -> List[PostRecord]:
    """Convert a standardized chunk into PostRecord tuples."""
    records = []
    for year, seq, emojis, emoticons, hashtags in chunk.itertuples(index=False, name=None):
        records.append(PostRecord(
            None if pd.isna(year) else int(year),
            None if pd.isna(seq) else int(seq),
            emojis,
            emoticons,
            hashtags,
        ))
    return records


def chunked_reader(path: Union[str, Path], chunk_size: Optional[int] = None) -> Iterator[pd.DataFrame]:
    """
    Yield standardized DataFrame chunks of the source CSV.

    The first row is a header and is skipped; columns are taken by position,
    so every data row must hold exactly five fields. Any read or parse
    failure is fatal and surfaces as SourceReadError.
    """
    path = Path(path)
    chunk_size = chunk_size or CONFIG["chunk_size"]

    if not path.is_file():
        raise SourceReadError(f"Source file not found: {path}")

    try:
        reader = pd.read_csv(
            path,
            header=None,
            skiprows=1,
            index_col=False,
            dtype=str,
            keep_default_na=False,
            encoding='utf-8',
            chunksize=chunk_size,
            on_bad_lines='error',
        )
        with reader:
            for chunk in reader:
                yield _standardize_chunk(chunk)
    except pd.errors.EmptyDataError:
        logger.warning(f"Source file {path} is empty")
        return
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise SourceReadError(f"Failed to read source records from {path}: {e}") from e


def iter_record_chunks(path: Union[str, Path], chunk_size: Optional[int] = None,
                       desc: str = "Reading records", show_progress: bool = True) -> Iterator[List[PostRecord]]:
    """Yield lists of PostRecord, one list per chunk, with a progress bar."""
    total_rows = 0
    chunk_iterator = tqdm(
        chunked_reader(path, chunk_size),
        desc=desc,
        unit="chunk",
        disable=not show_progress,
    )
    for chunk in chunk_iterator:
        total_rows += len(chunk)
        chunk_iterator.set_postfix({'Rows': f"{total_rows:,}"})
        yield chunk_to_records(chunk)


def iter_records(path: Union[str, Path], chunk_size: Optional[int] = None) -> Iterator[PostRecord]:
    """Yield every record of the source, one at a time."""
    for records in iter_record_chunks(path, chunk_size, show_progress=False):
        yield from records
