"""
Pytest configuration and shared fixtures
"""

import csv
import logging
import os
import shutil
import tempfile

import pytest

from mexgraph.config import SOURCE_COLUMNS
from mexgraph.text_processing import is_char_retained


def write_records_csv(path, rows):
    """Write (year, seq, emojis, emoticons, hashtags) rows under a header line"""
    with open(path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(SOURCE_COLUMNS)
        writer.writerows(rows)
    return path


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture(autouse=True)
def fresh_char_cache():
    """Each test sees the unexpected-character warnings again"""
    is_char_retained.cache_clear()
    yield
    is_char_retained.cache_clear()


@pytest.fixture
def scenario_rows():
    """The three-record example: repeated emoji, emoticon and shared hashtag"""
    return [
        (2014, 1, "😀 😀", "", ""),
        (2014, 2, "😀", ":)", "#fun"),
        (2015, 3, "😂", "", "#fun"),
    ]


@pytest.fixture
def scenario_csv(temp_dir, scenario_rows):
    """Scenario records written to input.csv"""
    return write_records_csv(os.path.join(temp_dir, 'input.csv'), scenario_rows)


@pytest.fixture
def mixed_rows():
    """A larger corpus with modifiers, emoticons and repeated hashtags"""
    rows = []
    emoji_cycle = ["👍🏽 😀", "👍 👮‍♂️", "👮‍♀️ 😀 😀", "😂", "", "❤️ 👍🏻"]
    emoticon_cycle = [":)", "", ":D :)", "<3", ":unknown:", ""]
    hashtag_cycle = ["#fun", "#fun #love", "", "#love", "#fun", "#tbt"]
    for i in range(60):
        rows.append((
            2010 + i % 5,
            i,
            emoji_cycle[i % len(emoji_cycle)],
            emoticon_cycle[(i * 7) % len(emoticon_cycle)],
            hashtag_cycle[(i * 5) % len(hashtag_cycle)],
        ))
    return rows


@pytest.fixture
def mixed_csv(temp_dir, mixed_rows):
    """Mixed corpus written to mixed.csv"""
    return write_records_csv(os.path.join(temp_dir, 'mixed.csv'), mixed_rows)


@pytest.fixture
def restore_root_logging():
    """Undo logging.basicConfig(force=True) calls made by the CLI"""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
