import logging
from typing import Dict, Iterable, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemas.vote import VoteCount
from shared.config import parse_target_type
from shared.enum.target_type import TargetType
from voting.repository import VoteRepository

logger = logging.getLogger(__name__)


async def load_vote_counts(
    session: AsyncSession, target_type: TargetType, target_ids: Iterable[int]
) -> Dict[int, VoteCount]:
    """
    在调用方的会话中批量读取计数缓存，没有缓存行的目标计为 0。
    列表查询用它保证计数与列表项来自同一个快照。
    """
    ids = list(dict.fromkeys(target_ids))
    tallies = await VoteRepository(session).get_tallies(target_type, ids)
    return {
        target_id: VoteCount(
            upvotes=tallies.get(target_id, (0, 0))[0],
            downvotes=tallies.get(target_id, (0, 0))[1],
        )
        for target_id in ids
    }


class VoteTallyService:
    """投票计数的读取与修复"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_vote_count(self, target_id: int, target_type: str) -> VoteCount:
        resolved_type = parse_target_type(target_type)
        async with self.session_factory() as session:
            counts = await load_vote_counts(session, resolved_type, [target_id])
        return counts[target_id]

    async def get_vote_counts(
        self, target_type: str, target_ids: Iterable[int]
    ) -> Dict[int, VoteCount]:
        resolved_type = parse_target_type(target_type)
        async with self.session_factory() as session:
            return await load_vote_counts(session, resolved_type, target_ids)

    async def scan_vote_count(self, target_id: int, target_type: str) -> VoteCount:
        """不经过缓存，直接从投票记录统计。"""
        resolved_type = parse_target_type(target_type)
        async with self.session_factory() as session:
            upvotes, downvotes = await VoteRepository(session).scan_counts(
                resolved_type, target_id
            )
        return VoteCount(upvotes=upvotes, downvotes=downvotes)

    async def recompute_vote_count(self, target_id: int, target_type: str) -> VoteCount:
        """修复单个目标：用统计结果覆盖缓存。"""
        resolved_type = parse_target_type(target_type)
        async with self.session_factory() as session:
            repo = VoteRepository(session)
            upvotes, downvotes = await repo.scan_counts(resolved_type, target_id)
            cached = (await repo.get_tallies(resolved_type, [target_id])).get(target_id)
            if cached != (upvotes, downvotes):
                await repo.set_tally(resolved_type.value, target_id, upvotes, downvotes)
                await session.commit()
                if cached is not None:
                    logger.warning(
                        f"{resolved_type.value} {target_id} 的计数缓存 {cached} "
                        f"与统计结果 {(upvotes, downvotes)} 不一致，已修正"
                    )
        return VoteCount(upvotes=upvotes, downvotes=downvotes)

    async def recompute_all_vote_counts(self) -> int:
        """
        修复全部目标：覆盖所有有投票记录或有缓存行的目标，返回被修正的行数。
        """
        async with self.session_factory() as session:
            repo = VoteRepository(session)
            scanned = await repo.scan_all_counts()
            cached: Dict[Tuple[str, int], Tuple[int, int]] = {
                (t.target_type, t.target_id): (t.upvotes, t.downvotes)
                for t in await repo.get_all_tallies()
            }
            corrected = 0
            for key in set(scanned) | set(cached):
                expected = scanned.get(key, (0, 0))
                if cached.get(key) != expected:
                    await repo.set_tally(key[0], key[1], *expected)
                    corrected += 1
            await session.commit()

        if corrected:
            logger.warning(f"修正了 {corrected} 个目标的投票计数缓存")
        return corrected
