from datetime import datetime
from typing import Optional

from sqlmodel import BigInteger, Column, Field, SQLModel

from shared.clock import utcnow


class User(SQLModel, table=True):
    """存储作者信息，由身份服务同步写入"""

    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    name: str = Field(description="用户的唯一用户名")
    display_name: Optional[str] = Field(default=None, description="用户的显示名称")
    avatar_url: Optional[str] = Field(default=None, description="用户头像的 URL")

    created_at: datetime = Field(default_factory=utcnow, description="创建时间 (UTC)")
