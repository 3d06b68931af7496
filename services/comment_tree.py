"""
Threaded comment reconstruction.

Comments are stored flat, each with an optional parent_id. The forest is kept
as an arena: every comment lives once in `comments`, and the parent/child
relation is expressed as integer positions into that list. Nested CommentNode
models are only produced at the edge, for the JSON response.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from domain.comments import Comment, CommentNode

logger = logging.getLogger('uvicorn.error')

# Rendered nesting limit for API responses; deeper replies sit flat under the
# last ancestor above it.
MAX_RENDER_DEPTH = 64


@dataclass
class CommentForest:
    comments: List[Comment]
    index: Dict[str, int]
    children: List[List[int]]
    roots: List[int] = field(default_factory=list)

    def replies_of(self, comment_id: str) -> List[Comment]:
        return [self.comments[child] for child in self.children[self.index[comment_id]]]

    def to_nodes(self, max_depth: Optional[int] = None) -> List[CommentNode]:
        """
        Materialise the nested reply structure (one CommentNode per comment).

        With `max_depth`, replies nested deeper than that are attached, in
        pre-order, to their ancestor at depth `max_depth - 1`, so no rendered
        node sits below `max_depth` (roots are depth 0). The arena itself keeps
        the full parent chain.
        """
        forest: List[CommentNode] = []
        # (position, depth, node the comment is rendered under)
        stack = [(root, 0, None) for root in reversed(self.roots)]
        while stack:
            position, depth, anchor = stack.pop()
            node = CommentNode(**self.comments[position].model_dump(), replies=[])
            if anchor is None:
                forest.append(node)
            else:
                anchor.replies.append(node)
            child_anchor = node if max_depth is None or depth < max_depth else anchor
            child_depth = depth + 1 if child_anchor is node else depth
            for child in reversed(self.children[position]):
                stack.append((child, child_depth, child_anchor))
        return forest


def build_comment_forest(comments: Sequence[Comment]) -> CommentForest:
    """
    Resolve each comment's parent within `comments`.

    Comments without a parent, with a parent outside the input set (deleted,
    or belonging to another post) or pointing at themselves become roots.
    Sibling order follows input order. Depth is unlimited.
    """
    arena = list(comments)
    index: Dict[str, int] = {}
    for position, comment in enumerate(arena):
        index.setdefault(comment.id, position)

    children: List[List[int]] = [[] for _ in arena]
    parent_of: List[Optional[int]] = [None] * len(arena)
    roots: List[int] = []
    for position, comment in enumerate(arena):
        parent = index.get(comment.parent_id) if comment.parent_id is not None else None
        if parent is None or parent == position:
            roots.append(position)
        else:
            children[parent].append(position)
            parent_of[position] = parent

    forest = CommentForest(comments=arena, index=index, children=children, roots=roots)
    _break_cycles(forest, parent_of)
    return forest


def _break_cycles(forest: CommentForest, parent_of: List[Optional[int]]) -> None:
    # Anything not reachable from a root sits on (or hangs below) a parent cycle.
    reachable = [False] * len(forest.comments)
    stack = list(forest.roots)
    while stack:
        position = stack.pop()
        reachable[position] = True
        stack.extend(forest.children[position])

    for position in range(len(forest.comments)):
        if reachable[position]:
            continue
        # Walk up to the cycle and cut it at the first member seen in input order.
        seen = set()
        cursor = position
        while cursor not in seen:
            seen.add(cursor)
            cursor = parent_of[cursor]
        cycle = [cursor]
        member = parent_of[cursor]
        while member != cursor:
            cycle.append(member)
            member = parent_of[member]
        cut = min(cycle)
        logger.warning(f"Comment {forest.comments[cut].id} is part of a reply cycle; rendering it as top-level.")
        forest.children[parent_of[cut]].remove(cut)
        parent_of[cut] = None
        forest.roots.append(cut)
        forest.roots.sort()
        stack = [cut]
        while stack:
            current = stack.pop()
            reachable[current] = True
            stack.extend(forest.children[current])


def flatten_comment_forest(nodes: Iterable[CommentNode]) -> List[Comment]:
    """Pre-order flattening of a nested forest back into plain comments."""
    flat: List[Comment] = []
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        flat.append(Comment(**node.model_dump(exclude={"replies"})))
        stack.extend(reversed(node.replies))
    return flat
