from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.enum.vote_type import VoteAction, VoteState, VoteType


class LedgerOperation(str, Enum):
    """一次状态迁移需要对投票记录执行的写操作"""

    NOOP = "noop"
    INSERT = "insert"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass(frozen=True)
class Transition:
    from_state: VoteState
    to_state: VoteState
    operation: LedgerOperation
    upvote_delta: int = 0
    downvote_delta: int = 0


_STATE_BY_VOTE = {
    VoteType.UPVOTE: VoteState.UPVOTED,
    VoteType.DOWNVOTE: VoteState.DOWNVOTED,
}


def state_of(vote_type: Optional[str]) -> VoteState:
    """由当前有效投票的方向得到状态，没有投票时为 NoVote。"""
    if vote_type is None:
        return VoteState.NO_VOTE
    return _STATE_BY_VOTE[VoteType(vote_type)]


def vote_type_of(state: VoteState) -> Optional[VoteType]:
    for vote_type, mapped in _STATE_BY_VOTE.items():
        if mapped == state:
            return vote_type
    return None


def _delta(state: VoteState, sign: int) -> tuple:
    if state == VoteState.UPVOTED:
        return sign, 0
    if state == VoteState.DOWNVOTED:
        return 0, sign
    return 0, 0


def decide_transition(state: VoteState, action: VoteAction) -> Transition:
    """
    投票状态机：
    - upvote/downvote 在已是同方向时为空操作，反方向时替换，未投票时插入
    - cancel 在未投票时为空操作，否则删除
    """
    if action == VoteAction.CANCEL:
        target = VoteState.NO_VOTE
    else:
        target = _STATE_BY_VOTE[VoteType(action.value)]

    if target == state:
        return Transition(state, target, LedgerOperation.NOOP)

    if state == VoteState.NO_VOTE:
        operation = LedgerOperation.INSERT
    elif target == VoteState.NO_VOTE:
        operation = LedgerOperation.DELETE
    else:
        operation = LedgerOperation.REPLACE

    removed_up, removed_down = _delta(state, -1)
    added_up, added_down = _delta(target, +1)
    return Transition(
        from_state=state,
        to_state=target,
        operation=operation,
        upvote_delta=removed_up + added_up,
        downvote_delta=removed_down + added_down,
    )
