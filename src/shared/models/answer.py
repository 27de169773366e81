from datetime import datetime
from typing import List, Optional

from sqlmodel import JSON, BigInteger, Column, Field, SQLModel

from shared.clock import utcnow


class Answer(SQLModel, table=True):
    """回答模型。删除问题时不会级联删除回答。"""

    id: Optional[int] = Field(default=None, primary_key=True)

    # 不建外键，问题被删除后允许残留
    question_id: int = Field(index=True)
    author_id: int = Field(sa_column=Column(BigInteger, index=True, nullable=False))
    content: str
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column_kwargs={"onupdate": utcnow},
        nullable=False,
    )
