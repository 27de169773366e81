import logging
from contextlib import asynccontextmanager
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from content.assembler import ContentAssembler
from core.coordinator import ConsistencyCoordinator
from core.image_service import ImageResolver, StaticImageResolver
from schemas.content import AnswerDetail, QuestionDetail
from shared.clock import utcnow
from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.identity import CurrentUser, require_user_id
from shared.models import Answer, Question
from tag_system.repository import TagRepository

logger = logging.getLogger(__name__)


def _require_text(value: Optional[str], label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label}不能为空")
    return cleaned


def _clean_images(image_ids: Optional[List[str]]) -> List[str]:
    return [str(i).strip() for i in image_ids or [] if i is not None and str(i).strip()]


async def _commit(session: AsyncSession, description: str):
    try:
        await session.commit()
    except SQLAlchemyError as e:
        logger.error(f"{description}失败: {e}", exc_info=True)
        await session.rollback()
        raise ConflictError(f"{description}失败，所有更改已回滚")


class ContentService:
    """
    问题与回答的增删改查。
    只有作者本人可以修改或删除内容；改变问题标签集合的写入在分类锁内执行。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        coordinator: ConsistencyCoordinator,
        image_resolver: Optional[ImageResolver] = None,
    ):
        self.session_factory = session_factory
        self.coordinator = coordinator
        self.image_resolver = image_resolver or StaticImageResolver()

    @asynccontextmanager
    async def _tagging_scope(self, retagging: bool):
        if retagging:
            async with self.coordinator.taxonomy_scope():
                yield
        else:
            yield

    async def _resolve_tag_ids(self, repo: TagRepository, tag_ids: List[int]) -> List[int]:
        ids = list(dict.fromkeys(tag_ids))
        found = await repo.get_tags_by_ids(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(f"以下标签不存在: {missing}")
        return ids

    async def _get_question_row(self, session: AsyncSession, question_id: int) -> Question:
        question = await session.get(Question, question_id)
        if not question:
            raise NotFoundError(f"问题不存在: {question_id}")
        return question

    async def _get_answer_row(
        self, session: AsyncSession, answer_id: int, require_parent: bool = True
    ) -> Answer:
        """
        读取回答。require_parent 为 True 时，所属问题已被删除的回答同样视为不存在。
        """
        answer = await session.get(Answer, answer_id)
        if not answer:
            raise NotFoundError(f"回答不存在: {answer_id}")
        if require_parent:
            parent = await session.execute(
                select(Question.id).where(Question.id == answer.question_id)
            )
            if parent.scalar_one_or_none() is None:
                logger.warning(f"回答 {answer_id} 所属的问题 {answer.question_id} 已不存在")
                raise NotFoundError(f"回答不存在: {answer_id}")
        return answer

    async def create_question(
        self,
        current_user: CurrentUser,
        title: str,
        content: str,
        tag_ids: Optional[List[int]] = None,
        image_ids: Optional[List[str]] = None,
    ) -> QuestionDetail:
        user_id = require_user_id(current_user)
        clean_title = _require_text(title, "标题")
        clean_content = _require_text(content, "内容")

        async with self._tagging_scope(bool(tag_ids)):
            async with self.session_factory() as session:
                repo = TagRepository(session)
                ids = await self._resolve_tag_ids(repo, tag_ids or [])
                question = Question(
                    title=clean_title,
                    content=clean_content,
                    author_id=user_id,
                    images=_clean_images(image_ids),
                )
                session.add(question)
                await session.flush()
                question_id = cast(int, question.id)
                if ids:
                    await repo.add_links(question_id, ids)
                    await repo.adjust_question_counts(ids, +1)
                await _commit(session, "创建问题")

        logger.info(f"用户 {user_id} 创建了问题 {question_id}")
        return await self.get_question(question_id)

    async def update_question(
        self,
        current_user: CurrentUser,
        question_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tag_ids: Optional[List[int]] = None,
        image_ids: Optional[List[str]] = None,
    ) -> QuestionDetail:
        """部分更新问题，None 表示不修改；tag_ids 传空列表会清空标签。"""
        user_id = require_user_id(current_user)

        async with self._tagging_scope(tag_ids is not None):
            async with self.session_factory() as session:
                question = await self._get_question_row(session, question_id)
                if question.author_id != user_id:
                    raise AuthorizationError("只能修改自己发布的问题")
                if title is not None:
                    question.title = _require_text(title, "标题")
                if content is not None:
                    question.content = _require_text(content, "内容")
                if image_ids is not None:
                    question.images = _clean_images(image_ids)
                if tag_ids is not None:
                    repo = TagRepository(session)
                    ids = await self._resolve_tag_ids(repo, tag_ids)
                    await repo.replace_question_tags(question_id, ids)
                question.updated_at = utcnow()
                session.add(question)
                await _commit(session, "更新问题")

        logger.info(f"用户 {user_id} 更新了问题 {question_id}")
        return await self.get_question(question_id)

    async def delete_question(self, current_user: CurrentUser, question_id: int) -> bool:
        """
        删除问题及其标签关联。
        回答、投票和计数缓存不会随之删除，读取方需要容忍这些残留。
        """
        user_id = require_user_id(current_user)
        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                question = await self._get_question_row(session, question_id)
                if question.author_id != user_id:
                    raise AuthorizationError("只能删除自己发布的问题")
                await TagRepository(session).remove_question_links(question_id)
                await session.delete(question)
                await _commit(session, "删除问题")

        logger.info(f"用户 {user_id} 删除了问题 {question_id}")
        return True

    async def get_question(self, question_id: int) -> QuestionDetail:
        async with self.session_factory() as session:
            question = await self._get_question_row(session, question_id)
            details = await ContentAssembler(session, self.image_resolver).questions([question])
        return details[0]

    async def create_answer(
        self,
        current_user: CurrentUser,
        question_id: int,
        content: str,
        image_ids: Optional[List[str]] = None,
    ) -> AnswerDetail:
        user_id = require_user_id(current_user)
        clean_content = _require_text(content, "内容")

        async with self.session_factory() as session:
            await self._get_question_row(session, question_id)
            answer = Answer(
                question_id=question_id,
                author_id=user_id,
                content=clean_content,
                images=_clean_images(image_ids),
            )
            session.add(answer)
            await _commit(session, "创建回答")
            answer_id = cast(int, answer.id)

        logger.info(f"用户 {user_id} 回答了问题 {question_id}: 回答 {answer_id}")
        return await self.get_answer(answer_id)

    async def update_answer(
        self,
        current_user: CurrentUser,
        answer_id: int,
        content: Optional[str] = None,
        image_ids: Optional[List[str]] = None,
    ) -> AnswerDetail:
        user_id = require_user_id(current_user)
        async with self.session_factory() as session:
            answer = await self._get_answer_row(session, answer_id)
            if answer.author_id != user_id:
                raise AuthorizationError("只能修改自己发布的回答")
            if content is not None:
                answer.content = _require_text(content, "内容")
            if image_ids is not None:
                answer.images = _clean_images(image_ids)
            answer.updated_at = utcnow()
            session.add(answer)
            await _commit(session, "更新回答")

        logger.info(f"用户 {user_id} 更新了回答 {answer_id}")
        return await self.get_answer(answer_id)

    async def delete_answer(self, current_user: CurrentUser, answer_id: int) -> bool:
        """
        删除回答，其投票记录保留为残留数据。
        所属问题已被删除的回答仍可由作者删除。
        """
        user_id = require_user_id(current_user)
        async with self.session_factory() as session:
            answer = await self._get_answer_row(session, answer_id, require_parent=False)
            if answer.author_id != user_id:
                raise AuthorizationError("只能删除自己发布的回答")
            await session.delete(answer)
            await _commit(session, "删除回答")

        logger.info(f"用户 {user_id} 删除了回答 {answer_id}")
        return True

    async def get_answer(self, answer_id: int) -> AnswerDetail:
        """获取单个回答，所属问题已被删除时抛出 NotFoundError。"""
        async with self.session_factory() as session:
            answer = await self._get_answer_row(session, answer_id)
            details = await ContentAssembler(session, self.image_resolver).answers([answer])
        return details[0]
