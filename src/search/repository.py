import logging
from typing import List

from sqlalchemy import ColumnElement, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from search.qo.content_search import AnswerSearchQuery, QuestionSearchQuery
from shared.enum.sort_order import SortOrder
from shared.enum.tag_match import TagMatch
from shared.models import Answer, Question, Tag

logger = logging.getLogger(__name__)


def _ordering(model, sort_order: SortOrder):
    """按 created_at 再按 id 排序，保证分页稳定。"""
    if sort_order == SortOrder.ASC:
        return (model.created_at.asc(), model.id.asc())
    return (model.created_at.desc(), model.id.desc())


class SearchRepository:
    """封装问题与回答列表查询的数据库操作。"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _question_filters(self, query: QuestionSearchQuery) -> List[ColumnElement]:
        filters: List[ColumnElement] = []
        if query.author_id is not None:
            filters.append(Question.author_id == query.author_id)  # type: ignore
        tag_ids = list(dict.fromkeys(query.tag_ids))
        if tag_ids:
            if query.tag_match == TagMatch.ALL:
                for tag_id in tag_ids:
                    filters.append(Question.tags.any(Tag.id == tag_id))  # type: ignore
            else:
                filters.append(Question.tags.any(Tag.id.in_(tag_ids)))  # type: ignore
        return filters

    async def count_questions(self, query: QuestionSearchQuery) -> int:
        statement = select(func.count()).select_from(Question)
        filters = self._question_filters(query)
        if filters:
            statement = statement.where(and_(*filters))
        result = await self.session.execute(statement)
        return result.scalar_one_or_none() or 0

    async def list_questions(
        self, query: QuestionSearchQuery, offset: int, limit: int
    ) -> List[Question]:
        statement = select(Question)
        filters = self._question_filters(query)
        if filters:
            statement = statement.where(and_(*filters))
        statement = (
            statement.order_by(*_ordering(Question, query.sort_order))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    def _answer_statement(self, base, query: AnswerSearchQuery):
        # 只保留所属问题仍然存在的回答
        statement = base.join(Question, Question.id == Answer.question_id)  # type: ignore
        if query.question_id is not None:
            statement = statement.where(Answer.question_id == query.question_id)
        if query.user_id is not None:
            statement = statement.where(Answer.author_id == query.user_id)  # type: ignore
        return statement

    async def count_answers(self, query: AnswerSearchQuery) -> int:
        statement = self._answer_statement(
            select(func.count(Answer.id)).select_from(Answer), query  # type: ignore
        )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none() or 0

    async def list_answers(
        self, query: AnswerSearchQuery, offset: int, limit: int
    ) -> List[Answer]:
        statement = (
            self._answer_statement(select(Answer), query)
            .order_by(*_ordering(Answer, query.sort_order))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def question_exists(self, question_id: int) -> bool:
        result = await self.session.execute(
            select(Question.id).where(Question.id == question_id)
        )
        return result.scalar_one_or_none() is not None

