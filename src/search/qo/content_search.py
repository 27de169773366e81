from dataclasses import dataclass, field
from typing import List, Optional

from shared.enum.sort_order import SortOrder
from shared.enum.tag_match import TagMatch


@dataclass
class QuestionSearchQuery:
    """问题列表的查询条件，默认值已在进入核心之前解析完毕"""

    tag_ids: List[int] = field(default_factory=list)
    tag_match: TagMatch = TagMatch.ANY
    author_id: Optional[int] = None
    sort_order: SortOrder = SortOrder.DESC


@dataclass
class AnswerSearchQuery:
    """回答列表的查询条件，question_id 与 user_id 至少提供一个"""

    question_id: Optional[int] = None
    user_id: Optional[int] = None
    sort_order: SortOrder = SortOrder.DESC
