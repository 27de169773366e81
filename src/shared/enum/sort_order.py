from enum import Enum


class SortOrder(str, Enum):
    """按创建时间排序的方向"""

    ASC = "asc"
    DESC = "desc"
