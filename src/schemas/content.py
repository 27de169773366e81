from typing import List, Optional

from pydantic import Field

from schemas.base import ApiModel, PaginatedResponse, UtcDatetime
from schemas.tag import TagRef
from schemas.vote import VoteCount


class AuthorDetail(ApiModel):
    """
    内容作者的展示信息
    """

    id: int = Field(description="用户ID")
    name: str = Field(description="用户的唯一用户名")
    display_name: Optional[str] = Field(default=None, description="显示名称")
    avatar_url: Optional[str] = Field(default=None, description="头像 URL")


class QuestionDetail(ApiModel):
    id: int
    title: str
    content: str
    author_id: int
    author: Optional[AuthorDetail] = None
    tags: List[TagRef] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list, description="已解析的图片 URL")
    votes: VoteCount = Field(default_factory=VoteCount)
    created_at: UtcDatetime
    updated_at: UtcDatetime


class AnswerDetail(ApiModel):
    id: int
    question_id: int
    content: str
    author_id: int
    author: Optional[AuthorDetail] = None
    images: List[str] = Field(default_factory=list, description="已解析的图片 URL")
    votes: VoteCount = Field(default_factory=VoteCount)
    created_at: UtcDatetime
    updated_at: UtcDatetime


QuestionPage = PaginatedResponse[QuestionDetail]
AnswerPage = PaginatedResponse[AnswerDetail]
