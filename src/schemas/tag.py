from typing import List, Optional

from pydantic import Field

from schemas.base import ApiModel, PaginatedResponse, UtcDatetime


class TagRef(ApiModel):
    """标签的简要引用"""

    id: int
    name: str
    slug: str


class TagDetail(ApiModel):
    """标签的完整信息"""

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    synonyms: List[str] = Field(default_factory=list)
    parent_tag: Optional[TagRef] = Field(default=None, description="父标签")
    question_count: int = Field(default=0, ge=0, description="直接关联的问题数量")
    created_at: UtcDatetime
    updated_at: UtcDatetime


class MergeTagsResponse(ApiModel):
    """标签合并结果"""

    success: bool
    message: str
    merged_tag: Optional[TagDetail] = None


TagPage = PaginatedResponse[TagDetail]
