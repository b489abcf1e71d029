"""Bounded, insertion-ordered id set used to deduplicate polled records."""

import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10_000
DEFAULT_RETAIN = 5_000


class BoundedIdSet:
    """
    Insertion-ordered set of ids with a fixed eviction contract.

    When an insert pushes the size above ``max_size``, the oldest ids are
    evicted until exactly ``retain`` of the most recently added ids remain.
    Re-adding an id that is already present does not change its position.

    Not thread-safe: a set belongs to exactly one tail session and is only
    touched from that session's sequential poll cycle.

    Example:
        >>> seen = BoundedIdSet(max_size=4, retain=2)
        >>> for i in "abcde":
        ...     seen.add(i)
        >>> list(seen)
        ['d', 'e']
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, retain: int = DEFAULT_RETAIN):
        if retain < 0 or retain > max_size:
            raise ValueError("retain must be between 0 and max_size")
        self.max_size = max_size
        self.retain = retain
        self._ids: OrderedDict[str, None] = OrderedDict()
        self.evicted = 0

    def __contains__(self, item: object) -> bool:
        return item in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def add(self, item: str) -> bool:
        """Add an id. Returns False if it was already present."""
        if item in self._ids:
            return False
        self._ids[item] = None
        if len(self._ids) > self.max_size:
            self._truncate()
        return True

    def _truncate(self) -> None:
        drop = len(self._ids) - self.retain
        for _ in range(drop):
            self._ids.popitem(last=False)
        self.evicted += drop
        logger.debug(
            f"Dedup set exceeded {self.max_size} ids, evicted {drop} (kept {self.retain})"
        )

    def clear(self) -> None:
        self._ids.clear()
