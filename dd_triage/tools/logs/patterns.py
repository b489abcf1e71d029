"""Log pattern extraction by masking variable tokens.

Messages are reduced to templates by an ordered sequence of regex masks
(applied through Drain3's ``LogMasker``), then clustered by exact template.
Order matters: later masks run on already-masked text, so no mask may match
an earlier mask's placeholder. Because of that, masking a template again
leaves it unchanged.

Mask order:
1. canonical UUIDs            -> <UUID>
2. hex runs of 32+ characters -> <HEX>
3. bare integers              -> <N>   (digits inside dotted numbers are kept for step 4)
4. dotted-quad IPv4           -> <IP>
5. email addresses            -> <EMAIL>
6. http/https URLs            -> <URL>
7. "double" / 'single' quoted -> "<STR>" / '<STR>'
8. whitespace runs collapse to one space, then trim
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from drain3.masking import LogMasker, MaskingInstruction

from ...schema import PatternBucket

logger = logging.getLogger(__name__)

DEFAULT_PATTERN_LIMIT = 50

MASKING_INSTRUCTIONS = [
    MaskingInstruction(
        r"(?i)\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b",
        "<UUID>",
    ),
    MaskingInstruction(r"\b[0-9a-fA-F]{32,}\b", "<HEX>"),
    MaskingInstruction(r"(?<![\w.])\d+(?!\w|\.\d)", "<N>"),
    MaskingInstruction(r"\b\d{1,3}(?:\.\d{1,3}){3}\b", "<IP>"),
    MaskingInstruction(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+", "<EMAIL>"),
    MaskingInstruction(r"\bhttps?://\S+", "<URL>"),
    MaskingInstruction(r'"[^"]*"', '"<STR>"'),
    MaskingInstruction(r"'[^']*'", "'<STR>'"),
]

_WHITESPACE_RE = re.compile(r"\s+")

# Placeholders are spelled out in the instructions, so no prefix/suffix
_masker = LogMasker(MASKING_INSTRUCTIONS, "", "")


def extract_pattern(message: str) -> str:
    """Mask variable tokens in a message and return its template.

    Example:
        >>> extract_pattern("User 123e4567-e89b-12d3-a456-426614174000 failed at 10.0.0.1")
        'User <UUID> failed at <IP>'
    """
    masked = _masker.mask(message or "")
    return _WHITESPACE_RE.sub(" ", masked).strip()


@dataclass
class _Cluster:
    count: int
    sample: str


class PatternExtractor:
    """
    Clusters messages by masked template.

    Each template keeps a count and exactly one sample: the first message
    seen for it. Templates remember first-seen order, which breaks count ties.
    """

    def __init__(self) -> None:
        self._clusters: dict[str, _Cluster] = {}
        self.total = 0

    def add(self, message: str | None) -> str:
        """Add one message (None counts as empty) and return its template."""
        message = message or ""
        template = extract_pattern(message)
        cluster = self._clusters.get(template)
        if cluster is None:
            self._clusters[template] = _Cluster(count=1, sample=message)
        else:
            cluster.count += 1
        self.total += 1
        return template

    def add_all(self, messages: Iterable[str | None]) -> "PatternExtractor":
        for message in messages:
            self.add(message)
        return self

    @property
    def unique_patterns(self) -> int:
        return len(self._clusters)

    def get_patterns(self, limit: int = DEFAULT_PATTERN_LIMIT) -> list[PatternBucket]:
        """Clusters by descending count (first-seen order on ties), capped at ``limit``."""
        ranked = sorted(self._clusters.items(), key=lambda item: -item[1].count)
        return [
            PatternBucket(pattern=template, count=cluster.count, sample=cluster.sample)
            for template, cluster in ranked[: max(limit, 0)]
        ]


def extract_patterns(
    messages: Iterable[str | None], limit: int = DEFAULT_PATTERN_LIMIT
) -> list[PatternBucket]:
    """
    Cluster messages by template.

    Args:
        messages: Free-text messages; None is treated as an empty message.
        limit: Maximum number of clusters to return.

    Returns:
        PatternBuckets sorted by descending count, ties in first-seen order.
    """
    extractor = PatternExtractor().add_all(messages)
    logger.debug(
        f"Extracted {extractor.unique_patterns} patterns from {extractor.total} messages"
    )
    return extractor.get_patterns(limit)
