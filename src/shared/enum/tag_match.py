from enum import Enum


class TagMatch(str, Enum):
    """多标签过滤逻辑: ANY(有交集) 或 ALL(全部包含)"""

    ANY = "ANY"
    ALL = "ALL"
