import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from content.assembler import ContentAssembler
from core.image_service import ImageResolver, StaticImageResolver
from schemas.content import AnswerPage, QuestionPage
from search.pagination import compute_page_window
from search.qo.content_search import AnswerSearchQuery, QuestionSearchQuery
from search.repository import SearchRepository
from shared.config import ListingConfig
from shared.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _normalize_ids(values: Optional[List[int]], label: str) -> List[int]:
    ids: List[int] = []
    for value in values or []:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{label} 必须是整数: {value!r}")
        ids.append(value)
    return ids


class SearchService:
    """
    问题与回答的过滤和分页。
    总数和当前页在同一个会话（同一个快照）中读取，页码截断到有效范围。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        listing_config: Optional[ListingConfig] = None,
        image_resolver: Optional[ImageResolver] = None,
    ):
        self.session_factory = session_factory
        self.listing_config = listing_config or ListingConfig()
        self.image_resolver = image_resolver or StaticImageResolver()

    async def get_questions(
        self,
        tag_ids: Optional[List[int]] = None,
        tag_match: Optional[str] = None,
        author_id: Optional[int] = None,
        page: Optional[int] = 1,
        limit: Optional[int] = None,
        sort_order: Optional[str] = None,
    ) -> QuestionPage:
        """
        按标签和作者过滤问题。
        tag_match 为 ANY 时要求至少命中一个标签，为 ALL 时要求包含全部标签；
        tag_ids 为空表示不按标签过滤。
        """
        resolved_page, resolved_limit = self.listing_config.resolve_page(page, limit)
        query = QuestionSearchQuery(
            tag_ids=_normalize_ids(tag_ids, "标签ID"),
            tag_match=self.listing_config.resolve_tag_match(tag_match),
            author_id=author_id,
            sort_order=self.listing_config.resolve_sort_order(sort_order),
        )

        async with self.session_factory() as session:
            repo = SearchRepository(session)
            total = await repo.count_questions(query)
            window = compute_page_window(total, resolved_page, resolved_limit)
            questions = (
                await repo.list_questions(query, window.offset, window.limit) if total else []
            )
            items = await ContentAssembler(session, self.image_resolver).questions(questions)

        return QuestionPage(
            items=items,
            total_items=total,
            total_pages=window.total_pages,
            current_page=window.current_page,
        )

    async def get_answers(
        self,
        question_id: Optional[int] = None,
        user_id: Optional[int] = None,
        page: Optional[int] = 1,
        limit: Optional[int] = None,
        sort_order: Optional[str] = None,
    ) -> AnswerPage:
        """
        按问题或作者列出回答，两者至少提供一个。
        所属问题已被删除的回答不会出现在结果中。
        """
        if question_id is None and user_id is None:
            raise ValidationError("必须提供 question_id 或 user_id")
        resolved_page, resolved_limit = self.listing_config.resolve_page(page, limit)
        query = AnswerSearchQuery(
            question_id=question_id,
            user_id=user_id,
            sort_order=self.listing_config.resolve_sort_order(sort_order),
        )

        async with self.session_factory() as session:
            repo = SearchRepository(session)
            if question_id is not None and not await repo.question_exists(question_id):
                raise NotFoundError(f"问题不存在: {question_id}")
            total = await repo.count_answers(query)
            window = compute_page_window(total, resolved_page, resolved_limit)
            answers = await repo.list_answers(query, window.offset, window.limit) if total else []
            items = await ContentAssembler(session, self.image_resolver).answers(answers)

        return AnswerPage(
            items=items,
            total_items=total,
            total_pages=window.total_pages,
            current_page=window.current_page,
        )
