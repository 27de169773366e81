from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import JSON, Column, Field, Relationship, SQLModel

from shared.clock import utcnow

from .question_tag_link import QuestionTagLink

if TYPE_CHECKING:
    from .question import Question


class Tag(SQLModel, table=True):
    """标签模型。"""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    name_key: str = Field(
        unique=True, index=True, description="小写化的名称，用于大小写不敏感的唯一约束"
    )
    slug: str = Field(unique=True, index=True, description="由名称派生的唯一短名")
    description: Optional[str] = Field(default=None)
    synonyms: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # 弱引用，只存父标签ID，不建外键
    parent_tag_id: Optional[int] = Field(default=None, index=True)

    # 派生字段：直接关联该标签的问题数量
    question_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
        nullable=False,
    )

    questions: List["Question"] = Relationship(
        back_populates="tags", link_model=QuestionTagLink
    )
