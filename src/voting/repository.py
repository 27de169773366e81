import logging
from typing import Dict, Iterable, List, Optional, Tuple, cast

from sqlalchemy import ColumnElement, and_, case, delete, func, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from shared.clock import utcnow
from shared.enum.target_type import TargetType
from shared.enum.vote_type import VoteType
from shared.models import Answer, Question, Vote, VoteTally

logger = logging.getLogger(__name__)


class VoteRepository:
    """封装投票记录与投票计数缓存的数据库操作。"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def target_exists(self, target_type: TargetType, target_id: int) -> bool:
        """
        检查投票目标是否存在。
        回答所属的问题已被删除时，该回答视为不存在。
        """
        if target_type == TargetType.QUESTION:
            statement = select(Question.id).where(Question.id == target_id)
        else:
            statement = (
                select(Answer.id)
                .join(Question, Question.id == Answer.question_id)  # type: ignore
                .where(Answer.id == target_id)
            )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none() is not None

    async def get_live_vote(
        self, user_id: int, target_type: TargetType, target_id: int
    ) -> Optional[Vote]:
        statement = select(Vote).where(
            Vote.user_id == user_id,
            Vote.target_id == target_id,
            Vote.target_type == target_type.value,
        )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def insert_vote(
        self, user_id: int, target_type: TargetType, target_id: int, vote_type: VoteType
    ) -> Vote:
        """插入新投票，并发插入会由唯一约束以 IntegrityError 的形式拒绝。"""
        vote = Vote(
            user_id=user_id,
            target_id=target_id,
            target_type=target_type.value,
            vote_type=vote_type.value,
        )
        self.session.add(vote)
        await self.session.flush()
        return vote

    async def swap_vote_type(
        self, vote_id: int, expected: VoteType, new_type: VoteType
    ) -> bool:
        """
        比较并交换投票方向。
        只有当记录仍是 expected 方向时才会更新，返回是否命中。
        """
        stmt = (
            update(Vote)
            .where(and_(Vote.id == vote_id, Vote.vote_type == expected.value))  # type: ignore
            .values(vote_type=new_type.value, created_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def delete_vote(self, vote_id: int, expected: VoteType) -> bool:
        """仅当记录仍是 expected 方向时删除，返回是否命中。"""
        stmt = delete(Vote).where(
            and_(Vote.id == vote_id, Vote.vote_type == expected.value)  # type: ignore
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def apply_tally_delta(
        self,
        target_type: TargetType,
        target_id: int,
        upvote_delta: int,
        downvote_delta: int,
    ):
        """
        在 SQL 端累加计数缓存，不存在时以增量作为初始值插入。
        """
        if upvote_delta == 0 and downvote_delta == 0:
            return
        now = utcnow()
        insert_stmt = sqlite_insert(VoteTally).values(
            target_type=target_type.value,
            target_id=target_id,
            upvotes=max(upvote_delta, 0),
            downvotes=max(downvote_delta, 0),
            version=1,
            updated_at=now,
        )
        upsert_stmt = insert_stmt.on_conflict_do_update(
            index_elements=["target_type", "target_id"],
            set_={
                "upvotes": func.max(VoteTally.upvotes + upvote_delta, 0),
                "downvotes": func.max(VoteTally.downvotes + downvote_delta, 0),
                "version": VoteTally.version + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(upsert_stmt)

    async def get_tallies(
        self, target_type: TargetType, target_ids: Iterable[int]
    ) -> Dict[int, Tuple[int, int]]:
        """批量读取计数缓存，返回 {target_id: (upvotes, downvotes)}。"""
        ids = list(set(target_ids))
        if not ids:
            return {}
        statement = select(
            VoteTally.target_id, VoteTally.upvotes, VoteTally.downvotes
        ).where(
            VoteTally.target_type == target_type.value,
            cast(ColumnElement, VoteTally.target_id).in_(ids),
        )
        result = await self.session.execute(statement)
        return {row[0]: (row[1], row[2]) for row in result.all()}

    def _count_columns(self):
        return (
            func.coalesce(
                func.sum(case((Vote.vote_type == VoteType.UPVOTE.value, 1), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((Vote.vote_type == VoteType.DOWNVOTE.value, 1), else_=0)), 0
            ),
        )

    async def scan_counts(self, target_type: TargetType, target_id: int) -> Tuple[int, int]:
        """直接从投票记录统计 (upvotes, downvotes)。"""
        statement = select(*self._count_columns()).where(
            Vote.target_type == target_type.value,
            Vote.target_id == target_id,
        )
        result = await self.session.execute(statement)
        row = result.one()
        return int(row[0]), int(row[1])

    async def scan_all_counts(self) -> Dict[Tuple[str, int], Tuple[int, int]]:
        """按目标分组统计全部投票记录。"""
        statement = select(Vote.target_type, Vote.target_id, *self._count_columns()).group_by(
            Vote.target_type, Vote.target_id
        )
        result = await self.session.execute(statement)
        return {(row[0], row[1]): (int(row[2]), int(row[3])) for row in result.all()}

    async def get_all_tallies(self) -> List[VoteTally]:
        result = await self.session.execute(select(VoteTally))
        return list(result.scalars().all())

    async def set_tally(
        self, target_type: str, target_id: int, upvotes: int, downvotes: int
    ):
        """用给定值覆盖计数缓存，用于修复路径。"""
        now = utcnow()
        insert_stmt = sqlite_insert(VoteTally).values(
            target_type=target_type,
            target_id=target_id,
            upvotes=upvotes,
            downvotes=downvotes,
            version=1,
            updated_at=now,
        )
        upsert_stmt = insert_stmt.on_conflict_do_update(
            index_elements=["target_type", "target_id"],
            set_={
                "upvotes": upvotes,
                "downvotes": downvotes,
                "version": VoteTally.version + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(upsert_stmt)
