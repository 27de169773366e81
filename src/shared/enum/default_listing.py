from enum import Enum


class DefaultListing(Enum):
    # 每页结果数量
    PAGE_SIZE = 20

    # 单页结果数量上限
    MAX_PAGE_SIZE = 100

    # 默认排序方向
    SORT_ORDER = "desc"

    # 默认标签匹配逻辑
    TAG_MATCH = "ANY"

    # 投票冲突时的最大重试次数
    VOTE_MAX_RETRIES = 3

    # 每次重试的退避基数（秒）
    VOTE_RETRY_BACKOFF = 0.05
