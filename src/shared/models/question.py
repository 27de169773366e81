from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import JSON, BigInteger, Column, Field, Relationship, SQLModel

from shared.clock import utcnow

from .question_tag_link import QuestionTagLink

if TYPE_CHECKING:
    from .tag import Tag


class Question(SQLModel, table=True):
    """问题模型。"""

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    content: str
    author_id: int = Field(sa_column=Column(BigInteger, index=True, nullable=False))

    # 有序的图片ID列表，展示时由图片服务解析为URL
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
        nullable=False,
    )

    tags: List["Tag"] = Relationship(
        back_populates="questions", link_model=QuestionTagLink
    )
