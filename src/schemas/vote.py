from typing import Optional

from pydantic import Field

from schemas.base import ApiModel, UtcDatetime
from shared.enum.target_type import TargetType
from shared.enum.vote_type import VoteType


class VoteCount(ApiModel):
    """目标的投票计数"""

    upvotes: int = Field(default=0, ge=0)
    downvotes: int = Field(default=0, ge=0)


class VoteDetail(ApiModel):
    """单条有效投票"""

    id: int
    user_id: int
    target_id: int
    target_type: TargetType
    vote_type: VoteType
    created_at: UtcDatetime


class VoteResponse(ApiModel):
    """投票操作的结果"""

    success: bool
    message: str
    votes: Optional[VoteCount] = Field(default=None, description="操作后的最新计数")
    user_vote: Optional[VoteType] = Field(
        default=None, description="操作后当前用户的投票，None 表示未投票"
    )
