from collections import defaultdict
from typing import Dict, List, Sequence, cast

from sqlalchemy import ColumnElement
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.image_service import ImageResolver
from schemas.content import AnswerDetail, AuthorDetail, QuestionDetail
from schemas.tag import TagRef
from shared.enum.target_type import TargetType
from shared.models import Answer, Question, QuestionTagLink, Tag, User
from voting.tally_service import load_vote_counts


class ContentAssembler:
    """
    把问题和回答行组装为对外模型。
    标签名、投票计数和作者信息都在调用方的会话中批量读取，与列表项来自同一个快照。
    """

    def __init__(self, session: AsyncSession, image_resolver: ImageResolver):
        self.session = session
        self.image_resolver = image_resolver

    async def _load_authors(self, author_ids: Sequence[int]) -> Dict[int, AuthorDetail]:
        ids = list(set(author_ids))
        if not ids:
            return {}
        result = await self.session.execute(
            select(User).where(cast(ColumnElement, User.id).in_(ids))
        )
        return {
            user.id: AuthorDetail(
                id=user.id,
                name=user.name,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
            )
            for user in result.scalars().all()
        }

    async def _load_tag_refs(self, question_ids: Sequence[int]) -> Dict[int, List[TagRef]]:
        refs: Dict[int, List[TagRef]] = defaultdict(list)
        if not question_ids:
            return refs
        statement = (
            select(QuestionTagLink.question_id, Tag.id, Tag.name, Tag.slug)
            .join(Tag, Tag.id == QuestionTagLink.tag_id)  # type: ignore
            .where(cast(ColumnElement, QuestionTagLink.question_id).in_(list(question_ids)))
            .order_by(Tag.name_key, Tag.id)  # type: ignore
        )
        result = await self.session.execute(statement)
        for question_id, tag_id, name, slug in result.all():
            refs[question_id].append(TagRef(id=tag_id, name=name, slug=slug))
        return refs

    async def questions(self, questions: Sequence[Question]) -> List[QuestionDetail]:
        ids = [cast(int, q.id) for q in questions]
        tag_refs = await self._load_tag_refs(ids)
        votes = await load_vote_counts(self.session, TargetType.QUESTION, ids)
        authors = await self._load_authors([q.author_id for q in questions])
        return [
            QuestionDetail(
                id=cast(int, q.id),
                title=q.title,
                content=q.content,
                author_id=q.author_id,
                author=authors.get(q.author_id),
                tags=tag_refs.get(cast(int, q.id), []),
                images=self.image_resolver.resolve(q.images or []),
                votes=votes[cast(int, q.id)],
                created_at=q.created_at,
                updated_at=q.updated_at,
            )
            for q in questions
        ]

    async def answers(self, answers: Sequence[Answer]) -> List[AnswerDetail]:
        ids = [cast(int, a.id) for a in answers]
        votes = await load_vote_counts(self.session, TargetType.ANSWER, ids)
        authors = await self._load_authors([a.author_id for a in answers])
        return [
            AnswerDetail(
                id=cast(int, a.id),
                question_id=a.question_id,
                content=a.content,
                author_id=a.author_id,
                author=authors.get(a.author_id),
                images=self.image_resolver.resolve(a.images or []),
                votes=votes[cast(int, a.id)],
                created_at=a.created_at,
                updated_at=a.updated_at,
            )
            for a in answers
        ]
