from datetime import datetime

from sqlmodel import Field, SQLModel

from shared.clock import utcnow


class VoteTally(SQLModel, table=True):
    """
    目标的投票计数缓存。
    与 vote 表在同一事务内更新，可随时由 vote 表重新计算。
    """

    __tablename__ = "vote_tally"  # type: ignore

    target_type: str = Field(primary_key=True)
    target_id: int = Field(primary_key=True)
    upvotes: int = Field(default=0)
    downvotes: int = Field(default=0)
    version: int = Field(default=0, description="每次变更加一")

    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
        nullable=False,
    )
