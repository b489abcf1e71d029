"""Trace tree reconstruction from flat span lists.

Spans are stored in an index-addressed arena: ``parent[i]`` holds the arena
index of span ``i``'s parent (or None) and ``children[i]`` lists child
indices. Tree nodes are only materialized as :class:`TraceNode` objects once
the structure is final, so there is no shared mutable node graph.

Roots are spans without a parent id, or whose parent id is not among the
processed spans (e.g. the parent fell outside the query window).

Spans whose parent links form a cycle are unreachable from every root. The
builder detects them with a visited set after the root traversal and breaks
each cycle by promoting its earliest member (in input order) to a root. The
promoted span ids are reported as ``detached_span_ids``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ...schema import NormalizedSpan, TraceNode, parse_instant

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class TraceTree:
    """Result of building a trace forest."""

    roots: list[TraceNode] = field(default_factory=list)
    total_duration: int | None = None
    detached_span_ids: list[str] = field(default_factory=list)

    @property
    def max_depth(self) -> int:
        deepest = 0
        stack = list(self.roots)
        while stack:
            node = stack.pop()
            deepest = max(deepest, node.depth)
            stack.extend(node.children)
        return deepest


def _timestamp_key(span: NormalizedSpan) -> datetime:
    # Unparseable timestamps sort first
    return parse_instant(span.timestamp) or _EPOCH


class TraceHierarchyBuilder:
    """Builds a TraceTree from spans sharing one trace id."""

    def __init__(self, spans: list[NormalizedSpan]):
        self.spans = list(spans)
        n = len(self.spans)
        self.parent: list[int | None] = [None] * n
        self.children: list[list[int]] = [[] for _ in range(n)]
        self.depth: list[int] = [-1] * n
        self.roots: list[int] = []
        self.detached: list[int] = []

    def build(self) -> TraceTree:
        self._link()
        for kids in self.children:
            kids.sort(key=lambda i: _timestamp_key(self.spans[i]))

        for root in self.roots:
            self._assign_depths(root)
        self._break_cycles()

        detached = set(self.detached)
        natural_roots = [i for i in self.roots if i not in detached]
        total_duration = None
        if natural_roots:
            total_duration = max(self.spans[i].duration or 0 for i in natural_roots)

        return TraceTree(
            roots=self._materialize(),
            total_duration=total_duration,
            detached_span_ids=[self.spans[i].span_id for i in self.detached],
        )

    def _link(self) -> None:
        index: dict[str, int] = {}
        for i, span in enumerate(self.spans):
            index.setdefault(span.span_id, i)

        for i, span in enumerate(self.spans):
            p = index.get(span.parent_id) if span.parent_id else None
            if p is None:
                self.roots.append(i)
            else:
                self.parent[i] = p
                self.children[p].append(i)

    def _assign_depths(self, root: int) -> None:
        self.depth[root] = 0
        stack = [root]
        while stack:
            node = stack.pop()
            for child in self.children[node]:
                if self.depth[child] == -1:
                    self.depth[child] = self.depth[node] + 1
                    stack.append(child)

    def _break_cycles(self) -> None:
        for start in range(len(self.spans)):
            if self.depth[start] != -1:
                continue

            # Every unreached span's ancestor chain ends in a cycle
            chain: list[int] = []
            on_chain: set[int] = set()
            node: int | None = start
            while node is not None and node not in on_chain:
                chain.append(node)
                on_chain.add(node)
                node = self.parent[node]
            if node is None:
                continue

            cycle = chain[chain.index(node):]
            cut = min(cycle)
            old_parent = self.parent[cut]
            if old_parent is not None:
                self.children[old_parent].remove(cut)
            self.parent[cut] = None
            self.roots.append(cut)
            self.detached.append(cut)
            logger.warning(
                f"Span {self.spans[cut].span_id!r} is part of a parent-link cycle "
                f"of {len(cycle)} span(s); promoting it to a root"
            )
            self._assign_depths(cut)

    def _materialize(self) -> list[TraceNode]:
        # Preorder over the final arena; build nodes in reverse so children exist first
        order: list[int] = []
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            order.append(node)
            stack.extend(reversed(self.children[node]))

        built: dict[int, TraceNode] = {}
        for i in reversed(order):
            built[i] = TraceNode(
                span=self.spans[i],
                children=[built[c] for c in self.children[i]],
                depth=self.depth[i],
            )
        return [built[r] for r in self.roots]


def build_trace_tree(spans: list[NormalizedSpan]) -> TraceTree:
    """
    Reconstruct the parent-child forest of a trace.

    Args:
        spans: Normalized spans of one trace, in any order.

    Returns:
        TraceTree with root nodes (input order, cycle-promoted roots last),
        children sorted by ascending timestamp, depths from 0 at each root,
        and total duration as the maximum duration among natural roots.
    """
    return TraceHierarchyBuilder(spans).build()
