import math
from dataclasses import dataclass


@dataclass(frozen=True)
class PageWindow:
    """一次分页查询实际使用的页码窗口"""

    current_page: int
    total_pages: int
    offset: int
    limit: int


def compute_page_window(total_items: int, page: int, limit: int) -> PageWindow:
    """
    根据总数计算分页窗口。
    total_pages = ceil(total_items / limit)，当前页截断到 [1, max(total_pages, 1)]。
    """
    if limit < 1:
        raise ValueError("limit must be positive")
    total_pages = math.ceil(total_items / limit) if total_items > 0 else 0
    current_page = min(max(page, 1), max(total_pages, 1))
    return PageWindow(
        current_page=current_page,
        total_pages=total_pages,
        offset=(current_page - 1) * limit,
        limit=limit,
    )
