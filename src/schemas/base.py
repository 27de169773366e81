from datetime import datetime
from typing import Annotated, Generic, List, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.clock import ensure_utc

DataType = TypeVar("DataType")

# SQLite 读回的时间不带时区，统一按 UTC 处理
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class ApiModel(BaseModel):
    """
    对外模型的基类。
    字段名在 Python 中使用 snake_case，序列化时使用客户端约定的 camelCase。
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class PaginatedResponse(ApiModel, Generic[DataType]):
    """
    标准分页响应模型
    """

    items: List[DataType]
    total_items: int = Field(description="分页前符合条件的总项目数")
    total_pages: int = Field(description="总页数")
    current_page: int = Field(description="当前页码，已截断到有效范围")
