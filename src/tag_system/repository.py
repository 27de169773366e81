import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, cast

from sqlalchemy import ColumnElement, delete, func, or_, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from shared.models import QuestionTagLink, Tag
from tag_system.hierarchy import ParentMap

logger = logging.getLogger(__name__)


class TagRepository:
    """封装与标签及问题-标签关联相关的数据库操作。"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        result = await self.session.execute(select(Tag).where(Tag.id == tag_id))
        return result.scalar_one_or_none()

    async def get_tags_by_ids(self, tag_ids: Iterable[int]) -> Dict[int, Tag]:
        """根据ID批量获取标签，返回 {id: Tag}。"""
        ids = list(set(tag_ids))
        if not ids:
            return {}
        statement = select(Tag).where(cast(ColumnElement, Tag.id).in_(ids))
        result = await self.session.execute(statement)
        return {tag.id: tag for tag in result.scalars().all() if tag.id is not None}

    async def get_tag_by_name_key(self, name_key: str) -> Optional[Tag]:
        result = await self.session.execute(select(Tag).where(Tag.name_key == name_key))
        return result.scalar_one_or_none()

    async def get_tag_by_slug(self, slug: str) -> Optional[Tag]:
        result = await self.session.execute(select(Tag).where(Tag.slug == slug))
        return result.scalar_one_or_none()

    async def get_all_tags(self) -> Sequence[Tag]:
        """获取数据库中所有的标签。"""
        result = await self.session.execute(select(Tag))
        return result.scalars().all()

    async def get_parent_map(self) -> ParentMap:
        """读取当前完整的层级关系 {tag_id: parent_tag_id}。"""
        result = await self.session.execute(select(Tag.id, Tag.parent_tag_id))
        return {row[0]: row[1] for row in result.all()}

    async def get_children(self, tag_id: int) -> Sequence[Tag]:
        statement = (
            select(Tag)
            .where(Tag.parent_tag_id == tag_id)
            .order_by(Tag.name_key, Tag.id)  # type: ignore
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def get_taken_slugs(self, base: str, exclude_tag_id: Optional[int] = None) -> Set[str]:
        """获取与 base 同前缀、可能冲突的 slug 集合。"""
        statement = select(Tag.slug).where(
            or_(Tag.slug == base, cast(ColumnElement, Tag.slug).like(f"{base}-%"))
        )
        if exclude_tag_id is not None:
            statement = statement.where(Tag.id != exclude_tag_id)
        result = await self.session.execute(statement)
        return set(result.scalars().all())

    async def count_tags(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Tag))
        return result.scalar_one_or_none() or 0

    async def list_tags(self, offset: int, limit: int) -> List[Tag]:
        """按名称分页列出标签"""
        statement = (
            select(Tag)
            .order_by(Tag.name_key, Tag.id)  # type: ignore
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get_question_ids_for_tags(self, tag_ids: Iterable[int]) -> Set[int]:
        ids = list(set(tag_ids))
        if not ids:
            return set()
        statement = select(QuestionTagLink.question_id).where(
            cast(ColumnElement, QuestionTagLink.tag_id).in_(ids)
        )
        result = await self.session.execute(statement)
        return {qid for qid in result.scalars().all() if qid is not None}

    async def count_links(self, tag_ids: Iterable[int]) -> int:
        ids = list(set(tag_ids))
        if not ids:
            return 0
        statement = (
            select(func.count())
            .select_from(QuestionTagLink)
            .where(cast(ColumnElement, QuestionTagLink.tag_id).in_(ids))
        )
        result = await self.session.execute(statement)
        return result.scalar_one_or_none() or 0

    async def get_tag_ids_for_question(self, question_id: int) -> Set[int]:
        statement = select(QuestionTagLink.tag_id).where(
            QuestionTagLink.question_id == question_id
        )
        result = await self.session.execute(statement)
        return set(result.scalars().all())

    async def adjust_question_counts(self, tag_ids: Iterable[int], delta: int):
        """在 SQL 端增减 question_count，避免读改写丢失更新。"""
        ids = list(set(tag_ids))
        if not ids or delta == 0:
            return
        stmt = (
            update(Tag)
            .where(cast(ColumnElement, Tag.id).in_(ids))
            .values(question_count=func.max(Tag.question_count + delta, 0))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def add_links(self, question_id: int, tag_ids: Iterable[int]) -> int:
        """为问题添加标签关联，已存在的关联会被忽略，返回新增数量。"""
        values = [{"question_id": question_id, "tag_id": tag_id} for tag_id in set(tag_ids)]
        if not values:
            return 0
        stmt = (
            sqlite_insert(QuestionTagLink)
            .values(values)
            .on_conflict_do_nothing(index_elements=["question_id", "tag_id"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def replace_question_tags(
        self, question_id: int, tag_ids: Iterable[int]
    ) -> Tuple[Set[int], Set[int]]:
        """
        非破坏性地把问题的标签集合替换为 tag_ids，并同步维护 question_count。
        返回 (新增的标签ID, 移除的标签ID)。
        """
        current_tag_ids = await self.get_tag_ids_for_question(question_id)
        new_tag_ids = set(tag_ids)

        tags_to_add_ids = new_tag_ids - current_tag_ids
        tags_to_remove_ids = current_tag_ids - new_tag_ids

        if tags_to_remove_ids:
            await self.session.execute(
                delete(QuestionTagLink).where(
                    QuestionTagLink.question_id == question_id,  # type: ignore
                    cast(ColumnElement, QuestionTagLink.tag_id).in_(tags_to_remove_ids),
                )
            )
            await self.adjust_question_counts(tags_to_remove_ids, -1)

        if tags_to_add_ids:
            await self.add_links(question_id, tags_to_add_ids)
            await self.adjust_question_counts(tags_to_add_ids, +1)

        return tags_to_add_ids, tags_to_remove_ids

    async def remove_question_links(self, question_id: int) -> Set[int]:
        """删除问题的全部标签关联并扣减计数，返回受影响的标签ID。"""
        current_tag_ids = await self.get_tag_ids_for_question(question_id)
        if current_tag_ids:
            await self.session.execute(
                delete(QuestionTagLink).where(
                    QuestionTagLink.question_id == question_id  # type: ignore
                )
            )
            await self.adjust_question_counts(current_tag_ids, -1)
        return current_tag_ids

    async def count_questions_per_tag(self) -> Dict[int, int]:
        """从关联表直接统计每个标签的问题数量。"""
        statement = select(QuestionTagLink.tag_id, func.count()).group_by(
            QuestionTagLink.tag_id
        )
        result = await self.session.execute(statement)
        return {row[0]: row[1] for row in result.all()}
