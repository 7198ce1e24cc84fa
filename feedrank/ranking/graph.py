"""
Read-only traversal over the follow graph.

  one_hop(u)          = { v : u → v }
  mutual_frequency(u) = { c : |{ v ∈ one_hop(u) : v → c }| }
                        for c ∉ one_hop(u) ∪ {u}

Traversal stops at depth 2; friends-of-friends-of-friends are never expanded.
"""
import logging
from collections import Counter
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.models import Follow

logger = logging.getLogger(__name__)

# Bound the size of each IN (...) list sent to TiDB
IN_CHUNK = 500


def chunked(ids: list[str], size: Optional[int] = None) -> Iterable[list[str]]:
    size = size or IN_CHUNK
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class RelationshipGraph:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def one_hop(self, user_id: str) -> set[str]:
        rows = await self._session.execute(
            select(Follow.followee_id).where(Follow.follower_id == user_id)
        )
        return {r[0] for r in rows.all()}

    async def following_sets(self, user_ids: Iterable[str]) -> dict[str, list[str]]:
        """Followee lists for every id in `user_ids`, in stable (follower, followee) order."""
        ids = sorted(set(user_ids))
        result: dict[str, list[str]] = {uid: [] for uid in ids}
        for chunk in chunked(ids):
            rows = await self._session.execute(
                select(Follow.follower_id, Follow.followee_id)
                .where(Follow.follower_id.in_(chunk))
                .order_by(Follow.follower_id, Follow.followee_id)
            )
            for follower_id, followee_id in rows.all():
                result[follower_id].append(followee_id)
        return result

    async def mutual_frequency(self, user_id: str) -> dict[str, int]:
        """
        Two-hop candidates for `user_id` with the number of distinct followed
        users that lead to each, most frequent first (ties keep traversal order).
        """
        following = await self.one_hop(user_id)
        if not following:
            return {}

        excluded = following | {user_id}
        tally: Counter = Counter()
        for followees in (await self.following_sets(following)).values():
            for candidate in followees:
                if candidate not in excluded:
                    tally[candidate] += 1

        logger.debug(
            "Mutual expansion for %s: %d follows → %d candidates",
            user_id, len(following), len(tally),
        )
        return dict(tally.most_common())
