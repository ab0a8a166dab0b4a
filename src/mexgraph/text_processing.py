#!/usr/bin/env python3
"""
Tag processing utilities for the meta-expression graph pipeline.
Handles emoji canonicalization and turning post records into tags.
"""

import logging
import unicodedata
from collections import Counter
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Mapping, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Gender markers encoded as ZWJ + sign + VS16 collapse onto the base emoji
GENDER_SEQUENCES = (
    "\u200d\u2642\ufe0f",  # male sign
    "\u200d\u2640\ufe0f",  # female sign
)

# Unicode general categories that carry an emoji's visual identity
RETAINED_CATEGORIES = frozenset({
    "So",  # symbol, other
    "Po",  # punctuation, other
    "Sm",  # symbol, math
    "Pd",  # punctuation, dash
    "Ll",  # letter, lowercase
    "Cf",  # format (zero-width joiner)
})

# Pure modifiers: skin tones, variation selectors, keycaps, hair styles
DROPPED_CATEGORIES = frozenset({
    "Mn", "Sk", "Lm", "Me", "Mc", "Cn", "Lo",
    "Co", "Zs", "Lu", "Nd",
})

TOKEN_SEPARATOR = " "


class TagCategory(Enum):
    EMOJI = "Emoji"
    EMOTICON = "Emoticon"
    HASHTAG = "Hashtag"


class Tag(NamedTuple):
    """Normalized meta-expression; equal tags share one graph node."""
    text: str
    category: TagCategory


class PostRecord(NamedTuple):
    """One source row. Token fields hold raw space-separated tokens."""
    year: Optional[int]
    sequence_number: Optional[int]
    emojis: str
    emoticons: str
    hashtags: str


class ExtractionPolicy(Enum):
    DEFAULT = "default"
    REPLACE_EMOTICONS_IGNORE_HASHTAGS = "replace_emoticons_ignore_hashtags"

    @classmethod
    def from_flag(cls, replace_emoticons_and_ignore_hashtags: bool) -> "ExtractionPolicy":
        if replace_emoticons_and_ignore_hashtags:
            return cls.REPLACE_EMOTICONS_IGNORE_HASHTAGS
        return cls.DEFAULT


@lru_cache(maxsize=65536)
def is_char_retained(char: str) -> bool:
    """Decide whether one character belongs to the emoji's canonical form."""
    category = unicodedata.category(char)
    if category in RETAINED_CATEGORIES:
        return True
    if category not in DROPPED_CATEGORIES:
        # cached, so each distinct character is reported once
        logger.warning(f"Dropping unexpected character {char!r} (U+{ord(char):04X}) of category {category}")
    return False


def clean_emoji(token: str) -> Optional[str]:
    """
    Canonicalize a raw emoji token.

    Gender sequences are removed first, then every character outside the
    retained Unicode categories. Returns None when nothing is left.
    """
    if not token:
        return None

    for sequence in GENDER_SEQUENCES:
        token = token.replace(sequence, "")

    cleaned = "".join(ch for ch in token if is_char_retained(ch))
    return cleaned or None


def split_tokens(field: str) -> List[str]:
    """Split a token field on single spaces, dropping empty tokens."""
    if not field:
        return []
    return [tok for tok in field.split(TOKEN_SEPARATOR) if tok]


class TagExtractor:
    """Turns post records into tags under an extraction policy."""

    def __init__(self, emoticon_map: Optional[Mapping[str, str]] = None,
                 policy: ExtractionPolicy = ExtractionPolicy.DEFAULT):
        self.emoticon_map = dict(emoticon_map or {})
        self.policy = policy
        self.unmapped_emoticons: Counter = Counter()

    @property
    def replaces_emoticons(self) -> bool:
        return self.policy is ExtractionPolicy.REPLACE_EMOTICONS_IGNORE_HASHTAGS

    def extract(self, record: PostRecord) -> List[Tag]:
        tags = []

        for token in split_tokens(record.emojis):
            text = clean_emoji(token)
            if text is not None:
                tags.append(Tag(text, TagCategory.EMOJI))

        if self.replaces_emoticons:
            for token in split_tokens(record.emoticons):
                mapped = self.emoticon_map.get(token)
                if mapped is None:
                    logger.debug(f"No emoji mapping for emoticon {token!r}")
                    self.unmapped_emoticons[token] += 1
                    continue
                tags.append(Tag(mapped, TagCategory.EMOJI))
        else:
            for token in split_tokens(record.emoticons):
                tags.append(Tag(token, TagCategory.EMOTICON))
            for token in split_tokens(record.hashtags):
                tags.append(Tag(token, TagCategory.HASHTAG))

        return tags

    def merge_stats(self, other: "TagExtractor") -> None:
        """Fold diagnostics from a shard-local extractor into this one."""
        self.unmapped_emoticons.update(other.unmapped_emoticons)

    def clone(self) -> "TagExtractor":
        """Fresh extractor with the same map and policy but empty stats."""
        return TagExtractor(self.emoticon_map, self.policy)


def extract_tags(record: PostRecord, emoticon_map: Optional[Dict[str, str]] = None,
                 policy: ExtractionPolicy = ExtractionPolicy.DEFAULT) -> List[Tag]:
    """Stateless convenience wrapper around TagExtractor.extract."""
    return TagExtractor(emoticon_map, policy).extract(record)
