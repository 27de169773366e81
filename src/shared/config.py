import json
import logging
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from shared.enum.default_listing import DefaultListing
from shared.enum.sort_order import SortOrder
from shared.enum.tag_match import TagMatch
from shared.enum.target_type import TargetType
from shared.enum.vote_type import VoteAction
from shared.errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_PATH = "config.json"
DB_PATH = "data/database.db"
DATABASE_URL = f"sqlite+aiosqlite:///{DB_PATH}"


def parse_sort_order(value: Optional[str]) -> Optional[SortOrder]:
    """大小写不敏感地解析排序方向，未提供时返回 None。"""
    if value is None:
        return None
    if isinstance(value, SortOrder):
        return value
    try:
        return SortOrder(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"不支持的排序方向: {value}")


def parse_tag_match(value: Optional[str]) -> Optional[TagMatch]:
    """大小写不敏感地解析标签匹配逻辑，未提供时返回 None。"""
    if value is None:
        return None
    if isinstance(value, TagMatch):
        return value
    try:
        return TagMatch(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"不支持的标签匹配逻辑: {value}")


def parse_target_type(value) -> TargetType:
    """解析投票目标类型，接受 "Question"/"Answer"，大小写不敏感。"""
    if isinstance(value, TargetType):
        return value
    normalized = str(getattr(value, "value", value) or "").strip().lower()
    for target_type in TargetType:
        if target_type.value.lower() == normalized:
            return target_type
    raise ValidationError(f"不支持的目标类型: {value}")


def parse_vote_action(value) -> VoteAction:
    if isinstance(value, VoteAction):
        return value
    try:
        return VoteAction(str(getattr(value, "value", value) or "").strip().lower())
    except ValueError:
        raise ValidationError(f"不支持的投票操作: {value}")


class DatabaseConfig(BaseModel):
    """数据库连接配置"""

    url: str = Field(default=DATABASE_URL, description="SQLAlchemy 异步连接串")
    busy_timeout: float = Field(
        default=30.0, gt=0, description="SQLite 等待写锁的最长秒数"
    )
    echo: bool = Field(default=False, description="是否输出 SQL 日志")


class ListingConfig(BaseModel):
    """列表查询的默认值，在进入核心逻辑之前一次性解析"""

    default_page_size: int = Field(
        default=DefaultListing.PAGE_SIZE.value, ge=1, description="默认每页数量"
    )
    max_page_size: int = Field(
        default=DefaultListing.MAX_PAGE_SIZE.value, ge=1, description="每页数量上限"
    )
    default_sort_order: SortOrder = Field(
        default=SortOrder(DefaultListing.SORT_ORDER.value),
        description="默认排序方向",
    )
    default_tag_match: TagMatch = Field(
        default=TagMatch(DefaultListing.TAG_MATCH.value),
        description="默认标签匹配逻辑",
    )

    @field_validator("default_sort_order", mode="before")
    @classmethod
    def _normalize_sort_order(cls, value):
        return parse_sort_order(value) if isinstance(value, str) else value

    @field_validator("default_tag_match", mode="before")
    @classmethod
    def _normalize_tag_match(cls, value):
        return parse_tag_match(value) if isinstance(value, str) else value

    def resolve_page(self, page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
        """
        解析分页参数。
        page 小于 1 时按 1 处理；limit 小于 1 视为非法，超出上限时截断到上限。
        """
        resolved_page = page if page is not None and page >= 1 else 1
        if limit is None:
            resolved_limit = self.default_page_size
        elif limit < 1:
            raise ValidationError("每页数量必须大于 0")
        else:
            resolved_limit = limit
        return resolved_page, min(resolved_limit, self.max_page_size)

    def resolve_sort_order(self, value: Optional[str]) -> SortOrder:
        return parse_sort_order(value) or self.default_sort_order

    def resolve_tag_match(self, value: Optional[str]) -> TagMatch:
        return parse_tag_match(value) or self.default_tag_match


class VotingConfig(BaseModel):
    """投票冲突重试配置"""

    max_retries: int = Field(
        default=DefaultListing.VOTE_MAX_RETRIES.value,
        ge=0,
        description="并发冲突时的最大重试次数",
    )
    retry_backoff: float = Field(
        default=DefaultListing.VOTE_RETRY_BACKOFF.value,
        ge=0,
        description="重试退避基数（秒），第 n 次重试等待 n 倍",
    )


class ImageConfig(BaseModel):
    """图片引用解析配置"""

    base_url: str = Field(default="/images", description="图片访问地址前缀")


class AppConfig(BaseModel):
    """应用配置，对应 config.json"""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    listing: ListingConfig = Field(default_factory=ListingConfig)
    voting: VotingConfig = Field(default_factory=VotingConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)


def load_config(path: str = CONFIG_PATH) -> AppConfig:
    """
    读取 config.json 并校验为 AppConfig。
    文件不存在时使用全部默认值。
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        logger.warning(f"未找到配置文件 {path}，使用默认配置")
        return AppConfig()

    config = AppConfig.model_validate(raw)
    logger.info(f"配置已从 {path} 加载")
    return config
