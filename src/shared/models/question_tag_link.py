from typing import Optional

from sqlmodel import Field, SQLModel


class QuestionTagLink(SQLModel, table=True):
    """问题和标签的多对多关联表模型。"""

    __tablename__ = "question_tag_link"  # type: ignore

    question_id: Optional[int] = Field(
        default=None, foreign_key="question.id", primary_key=True
    )
    tag_id: int = Field(foreign_key="tag.id", primary_key=True, index=True)
