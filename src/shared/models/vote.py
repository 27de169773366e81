from datetime import datetime
from typing import Optional

from sqlmodel import BigInteger, Column, Field, SQLModel, UniqueConstraint

from shared.clock import utcnow


class Vote(SQLModel, table=True):
    """投票模型，每个 (用户, 目标) 最多只有一条有效记录。"""

    __tablename__ = "vote"  # type: ignore
    __table_args__ = (
        UniqueConstraint(
            "user_id", "target_id", "target_type", name="uq_user_target_vote"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(BigInteger, index=True, nullable=False))
    target_id: int = Field(index=True)
    target_type: str = Field(index=True)  # "Question" 或 "Answer"
    vote_type: str  # "upvote" 或 "downvote"

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
