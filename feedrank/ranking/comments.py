"""
Flat comment threads.

Comments are stored as one row each with a `parent_id` reference instead of
nested reply arrays. CommentIndex builds an id → row map plus a parent → children
adjacency list once, and every traversal walks it with an explicit stack, so
thread depth never turns into recursion depth.

The engagement score wants the flattened total (comments + every reply);
count_item_comments() provides it straight from the table.
"""
from collections import defaultdict
from typing import Iterable, Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.models import Comment


class CommentIndex:
    def __init__(self, comments: Iterable[Comment]) -> None:
        self._by_id: dict[str, Comment] = {}
        self._children: dict[Optional[str], list[Comment]] = defaultdict(list)
        for comment in comments:
            self._by_id[comment.comment_id] = comment
        for comment in self._by_id.values():
            parent = comment.parent_id if comment.parent_id in self._by_id else None
            self._children[parent].append(comment)

    def __len__(self) -> int:
        return len(self._by_id)

    def find(self, comment_id: str) -> Optional[Comment]:
        return self._by_id.get(comment_id)

    def roots(self) -> list[Comment]:
        """Top-level comments; replies whose parent is missing are promoted here."""
        return list(self._children[None])

    def children(self, comment_id: str) -> list[Comment]:
        return list(self._children.get(comment_id, ()))

    def walk(self, comment_id: str) -> Iterator[Comment]:
        """Depth-first pre-order over every reply under `comment_id` (excluding it)."""
        stack = list(reversed(self._children.get(comment_id, ())))
        seen = {comment_id}
        while stack:
            node = stack.pop()
            if node.comment_id in seen:
                continue
            seen.add(node.comment_id)
            yield node
            stack.extend(reversed(self._children.get(node.comment_id, ())))

    def count_descendants(self, comment_id: str) -> int:
        return sum(1 for _ in self.walk(comment_id))

    def count_all(self) -> int:
        return len(self._by_id)


async def load_comment_index(session: AsyncSession, item_id: str) -> CommentIndex:
    rows = await session.execute(
        select(Comment)
        .where(Comment.item_id == item_id)
        .order_by(Comment.created_at, Comment.comment_id)
    )
    return CommentIndex(rows.scalars().all())


async def count_item_comments(session: AsyncSession, item_id: str) -> int:
    """Flattened comment total for an item: top-level comments plus all replies."""
    return await session.scalar(
        select(func.count()).select_from(Comment).where(Comment.item_id == item_id)
    ) or 0
