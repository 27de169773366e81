import logging
from typing import Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.coordinator import ConsistencyCoordinator, StaleStateError
from schemas.vote import VoteCount, VoteDetail, VoteResponse
from shared.config import parse_target_type, parse_vote_action
from shared.enum.target_type import TargetType
from shared.enum.vote_type import VoteAction, VoteType
from shared.errors import NotFoundError
from shared.identity import CurrentUser, require_user_id
from shared.models import Vote
from voting.repository import VoteRepository
from voting.state_machine import LedgerOperation, decide_transition, state_of, vote_type_of

logger = logging.getLogger(__name__)

_MESSAGES = {
    LedgerOperation.NOOP: "投票状态未变化",
    LedgerOperation.INSERT: "投票成功",
    LedgerOperation.REPLACE: "已更改投票",
    LedgerOperation.DELETE: "已取消投票",
}


class VoteLedgerService:
    """
    投票账本：维护每个 (用户, 目标) 的唯一有效投票，并在同一事务中更新计数缓存。
    """

    def __init__(self, session_factory: async_sessionmaker, coordinator: ConsistencyCoordinator):
        self.session_factory = session_factory
        self.coordinator = coordinator

    async def vote(
        self,
        current_user: CurrentUser,
        target_id: int,
        target_type: str,
        vote_type: str,
    ) -> VoteResponse:
        """
        对问题或回答执行 upvote / downvote / cancel。
        同一键上的请求串行执行；跨进程的竞争由比较交换和唯一约束检测并重试。
        """
        user_id = require_user_id(current_user)
        resolved_type = parse_target_type(target_type)
        action = parse_vote_action(vote_type)

        async def attempt() -> VoteResponse:
            return await self._apply_vote(user_id, target_id, resolved_type, action)

        try:
            async with self.coordinator.vote_scope(user_id, resolved_type.value, target_id):
                return await self.coordinator.run_with_retry(
                    attempt,
                    description=f"用户 {user_id} 对 {resolved_type.value} {target_id} 的投票",
                    conflict_message="投票过于频繁，请稍后重试",
                )
        except SQLAlchemyError as e:
            logger.error(
                f"用户 {user_id} 对 {resolved_type.value} {target_id} 投票时数据库出错: {e}",
                exc_info=True,
            )
            return VoteResponse(success=False, message="投票失败，请稍后重试")

    async def _apply_vote(
        self, user_id: int, target_id: int, target_type: TargetType, action: VoteAction
    ) -> VoteResponse:
        async with self.session_factory() as session:
            repo = VoteRepository(session)
            if not await repo.target_exists(target_type, target_id):
                raise NotFoundError(f"{target_type.value} {target_id} 不存在")

            live = await repo.get_live_vote(user_id, target_type, target_id)
            transition = decide_transition(
                state_of(live.vote_type if live else None), action
            )

            if transition.operation == LedgerOperation.INSERT:
                await repo.insert_vote(
                    user_id, target_type, target_id, cast(VoteType, vote_type_of(transition.to_state))
                )
            elif transition.operation == LedgerOperation.REPLACE:
                current = cast(Vote, live)
                swapped = await repo.swap_vote_type(
                    cast(int, current.id),
                    VoteType(current.vote_type),
                    cast(VoteType, vote_type_of(transition.to_state)),
                )
                if not swapped:
                    raise StaleStateError()
            elif transition.operation == LedgerOperation.DELETE:
                current = cast(Vote, live)
                if not await repo.delete_vote(cast(int, current.id), VoteType(current.vote_type)):
                    raise StaleStateError()

            await repo.apply_tally_delta(
                target_type, target_id, transition.upvote_delta, transition.downvote_delta
            )
            upvotes, downvotes = (await repo.get_tallies(target_type, [target_id])).get(
                target_id, (0, 0)
            )
            await session.commit()

        if transition.operation == LedgerOperation.NOOP:
            logger.debug(
                f"用户 {user_id} 对 {target_type.value} {target_id} 的 {action.value} 未改变状态"
            )
        else:
            logger.info(
                f"用户 {user_id} 对 {target_type.value} {target_id}: "
                f"{transition.from_state.value} -> {transition.to_state.value}"
            )
        return VoteResponse(
            success=True,
            message=_MESSAGES[transition.operation],
            votes=VoteCount(upvotes=upvotes, downvotes=downvotes),
            user_vote=vote_type_of(transition.to_state),
        )

    async def get_user_vote(
        self, current_user: CurrentUser, target_id: int, target_type: str
    ) -> Optional[VoteDetail]:
        """获取当前用户对目标的有效投票，未投票时返回 None。"""
        user_id = require_user_id(current_user)
        resolved_type = parse_target_type(target_type)
        async with self.session_factory() as session:
            live = await VoteRepository(session).get_live_vote(
                user_id, resolved_type, target_id
            )
        if live is None:
            return None
        return VoteDetail(
            id=cast(int, live.id),
            user_id=live.user_id,
            target_id=live.target_id,
            target_type=TargetType(live.target_type),
            vote_type=VoteType(live.vote_type),
            created_at=live.created_at,
        )
