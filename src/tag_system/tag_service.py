import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, cast

from sqlalchemy import ColumnElement, delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.coordinator import ConsistencyCoordinator
from schemas.tag import MergeTagsResponse, TagDetail, TagPage, TagRef
from search.pagination import compute_page_window
from shared.clock import utcnow
from shared.config import ListingConfig
from shared.errors import ConflictError, CycleError, NotFoundError, ValidationError
from shared.identity import CurrentUser, require_user_id
from shared.models import QuestionTagLink, Tag
from tag_system.hierarchy import ancestor_ids, ensure_acyclic
from tag_system.repository import TagRepository
from tag_system.slug import disambiguate_slug, slugify

logger = logging.getLogger(__name__)


def normalize_synonyms(synonyms: Iterable[str], tag_name: str) -> List[str]:
    """去掉空白项、大小写不敏感去重，并剔除与标签名相同的同义词。"""
    seen = {tag_name.strip().lower()}
    result = []
    for synonym in synonyms:
        cleaned = (synonym or "").strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        result.append(cleaned)
    return result


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("标签名称不能为空")
    return cleaned


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    cleaned = description.strip()
    return cleaned or None


def _search_rank(tag: Tag, keyword: str) -> Optional[int]:
    """
    关键词与标签的匹配等级，越小越相关；不匹配时返回 None。
    0 名称完全一致, 1 名称前缀, 2 名称包含, 3 同义词完全一致, 4 同义词包含
    """
    name = tag.name.lower()
    if name == keyword:
        return 0
    if name.startswith(keyword):
        return 1
    if keyword in name:
        return 2
    synonyms = [s.lower() for s in (tag.synonyms or [])]
    if keyword in synonyms:
        return 3
    if any(keyword in s for s in synonyms):
        return 4
    return None


def to_tag_ref(tag: Tag) -> TagRef:
    return TagRef(id=cast(int, tag.id), name=tag.name, slug=tag.slug)


def to_tag_detail(tag: Tag, parent: Optional[Tag] = None) -> TagDetail:
    return TagDetail(
        id=cast(int, tag.id),
        name=tag.name,
        slug=tag.slug,
        description=tag.description,
        synonyms=list(tag.synonyms or []),
        parent_tag=to_tag_ref(parent) if parent else None,
        question_count=max(tag.question_count, 0),
        created_at=tag.created_at,
        updated_at=tag.updated_at,
    )


class TagService:
    """
    标签分类管理：创建、修改、层级、同义词搜索与合并。
    每个操作使用独立的会话；所有会改变层级或问题标签集合的写操作都在分类锁内执行。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        coordinator: ConsistencyCoordinator,
        listing_config: Optional[ListingConfig] = None,
    ):
        self.session_factory = session_factory
        self.coordinator = coordinator
        self.listing_config = listing_config or ListingConfig()

    async def _details_with_parents(
        self, repo: TagRepository, tags: Sequence[Tag]
    ) -> List[TagDetail]:
        parent_ids = [t.parent_tag_id for t in tags if t.parent_tag_id is not None]
        parents = await repo.get_tags_by_ids(parent_ids)
        return [
            to_tag_detail(
                tag, parents.get(tag.parent_tag_id) if tag.parent_tag_id else None
            )
            for tag in tags
        ]

    async def create_tag(
        self,
        current_user: CurrentUser,
        name: str,
        description: Optional[str] = None,
        synonyms: Optional[List[str]] = None,
        parent_tag_id: Optional[int] = None,
        tag_id: Optional[int] = None,
    ) -> TagDetail:
        """
        创建标签。
        tag_id 可由调用方指定（例如外部系统已分配的ID），否则由数据库分配。
        """
        user_id = require_user_id(current_user)
        clean_name = _clean_name(name)
        clean_synonyms = normalize_synonyms(synonyms or [], clean_name)
        if tag_id is not None and parent_tag_id is not None and tag_id == parent_tag_id:
            raise CycleError("标签不能以自身为父标签")

        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                repo = TagRepository(session)
                if await repo.get_tag_by_name_key(clean_name.lower()):
                    raise ValidationError(f"标签名称已存在: {clean_name}")
                if tag_id is not None and await repo.get_tag(tag_id):
                    raise ValidationError(f"标签ID已被占用: {tag_id}")

                parent = None
                if parent_tag_id is not None:
                    parent = await repo.get_tag(parent_tag_id)
                    if not parent:
                        raise NotFoundError(f"父标签不存在: {parent_tag_id}")
                    ensure_acyclic(tag_id, parent_tag_id, await repo.get_parent_map())

                base_slug = slugify(clean_name)
                slug = disambiguate_slug(base_slug, await repo.get_taken_slugs(base_slug))

                tag = Tag(
                    id=tag_id,
                    name=clean_name,
                    name_key=clean_name.lower(),
                    slug=slug,
                    description=_clean_description(description),
                    synonyms=clean_synonyms,
                    parent_tag_id=parent_tag_id,
                )
                session.add(tag)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.warning(f"创建标签 {clean_name} 时触发唯一约束")
                    raise ValidationError("标签名称或ID已被占用")

                logger.info(f"用户 {user_id} 创建标签 {tag.id}: {tag.name} ({tag.slug})")
                return to_tag_detail(tag, parent)

    async def update_tag(
        self,
        current_user: CurrentUser,
        tag_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        synonyms: Optional[List[str]] = None,
        parent_tag_id: Optional[int] = None,
        detach_parent: bool = False,
    ) -> TagDetail:
        """
        部分更新标签，None 表示不修改该字段。
        detach_parent=True 时移除父标签。
        """
        user_id = require_user_id(current_user)
        if detach_parent and parent_tag_id is not None:
            raise ValidationError("不能同时设置和移除父标签")

        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                repo = TagRepository(session)
                tag = await repo.get_tag(tag_id)
                if not tag:
                    raise NotFoundError(f"标签不存在: {tag_id}")

                if name is not None:
                    clean_name = _clean_name(name)
                    name_key = clean_name.lower()
                    if name_key != tag.name_key:
                        existing = await repo.get_tag_by_name_key(name_key)
                        if existing and existing.id != tag.id:
                            raise ValidationError(f"标签名称已存在: {clean_name}")
                    if slugify(clean_name) != slugify(tag.name):
                        base_slug = slugify(clean_name)
                        tag.slug = disambiguate_slug(
                            base_slug, await repo.get_taken_slugs(base_slug, tag.id)
                        )
                    tag.name = clean_name
                    tag.name_key = name_key

                if description is not None:
                    tag.description = _clean_description(description)

                tag.synonyms = normalize_synonyms(
                    synonyms if synonyms is not None else (tag.synonyms or []), tag.name
                )

                parent = None
                if detach_parent:
                    tag.parent_tag_id = None
                elif parent_tag_id is not None:
                    if parent_tag_id == tag.id:
                        raise CycleError("标签不能以自身为父标签")
                    parent = await repo.get_tag(parent_tag_id)
                    if not parent:
                        raise NotFoundError(f"父标签不存在: {parent_tag_id}")
                    # 使用事务内读到的最新层级校验
                    ensure_acyclic(tag.id, parent_tag_id, await repo.get_parent_map())
                    tag.parent_tag_id = parent_tag_id
                elif tag.parent_tag_id is not None:
                    parent = await repo.get_tag(tag.parent_tag_id)

                tag.updated_at = utcnow()
                session.add(tag)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise ValidationError("标签名称已被占用")

                logger.info(f"用户 {user_id} 更新了标签 {tag.id}")
                return to_tag_detail(tag, parent)

    async def delete_tag(self, current_user: CurrentUser, tag_id: int) -> bool:
        """
        删除标签：移除其问题关联，子标签改为无父标签，最后删除标签本身。
        """
        user_id = require_user_id(current_user)
        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                repo = TagRepository(session)
                tag = await repo.get_tag(tag_id)
                if not tag:
                    raise NotFoundError(f"标签不存在: {tag_id}")
                try:
                    await session.execute(
                        delete(QuestionTagLink).where(QuestionTagLink.tag_id == tag_id)  # type: ignore
                    )
                    await session.execute(
                        update(Tag)
                        .where(Tag.parent_tag_id == tag_id)  # type: ignore
                        .values(parent_tag_id=None)
                        .execution_options(synchronize_session=False)
                    )
                    await session.delete(tag)
                    await session.commit()
                except SQLAlchemyError as e:
                    logger.error(f"删除标签 {tag_id} 失败: {e}", exc_info=True)
                    await session.rollback()
                    raise ConflictError("删除标签失败，所有更改已回滚")

                logger.info(f"用户 {user_id} 删除了标签 {tag_id}")
                return True

    async def get_tag(self, tag_id: int) -> TagDetail:
        async with self.session_factory() as session:
            repo = TagRepository(session)
            tag = await repo.get_tag(tag_id)
            if not tag:
                raise NotFoundError(f"标签不存在: {tag_id}")
            parent = await repo.get_tag(tag.parent_tag_id) if tag.parent_tag_id else None
            return to_tag_detail(tag, parent)

    async def get_tag_by_slug(self, slug: str) -> TagDetail:
        async with self.session_factory() as session:
            repo = TagRepository(session)
            tag = await repo.get_tag_by_slug(slug)
            if not tag:
                raise NotFoundError(f"标签不存在: {slug}")
            parent = await repo.get_tag(tag.parent_tag_id) if tag.parent_tag_id else None
            return to_tag_detail(tag, parent)

    async def get_tags(self, page: Optional[int] = 1, limit: Optional[int] = None) -> TagPage:
        """按名称分页列出全部标签"""
        resolved_page, resolved_limit = self.listing_config.resolve_page(page, limit)
        async with self.session_factory() as session:
            repo = TagRepository(session)
            total = await repo.count_tags()
            window = compute_page_window(total, resolved_page, resolved_limit)
            tags = await repo.list_tags(window.offset, window.limit)
            items = await self._details_with_parents(repo, tags)
        return TagPage(
            items=items,
            total_items=total,
            total_pages=window.total_pages,
            current_page=window.current_page,
        )

    async def get_tag_ancestors(self, tag_id: int) -> List[TagDetail]:
        """从直接父标签到根标签依次返回。"""
        async with self.session_factory() as session:
            repo = TagRepository(session)
            if not await repo.get_tag(tag_id):
                raise NotFoundError(f"标签不存在: {tag_id}")
            chain = ancestor_ids(tag_id, await repo.get_parent_map())
            tags = await repo.get_tags_by_ids(chain)
            ordered = [tags[i] for i in chain if i in tags]
            return await self._details_with_parents(repo, ordered)

    async def get_tag_children(self, tag_id: int) -> List[TagDetail]:
        async with self.session_factory() as session:
            repo = TagRepository(session)
            tag = await repo.get_tag(tag_id)
            if not tag:
                raise NotFoundError(f"标签不存在: {tag_id}")
            children = await repo.get_children(tag_id)
            return [to_tag_detail(child, tag) for child in children]

    async def search_tags(self, keyword: str) -> List[TagDetail]:
        """
        在名称和同义词中做大小写不敏感的子串匹配。
        结果按相关度、名称、ID 排序，同样的数据总是返回同样的顺序。
        """
        needle = (keyword or "").strip().lower()
        if not needle:
            return []
        async with self.session_factory() as session:
            repo = TagRepository(session)
            ranked: List[Tuple[int, str, int, Tag]] = []
            for tag in await repo.get_all_tags():
                rank = _search_rank(tag, needle)
                if rank is not None:
                    ranked.append((rank, tag.name_key, cast(int, tag.id), tag))
            ranked.sort(key=lambda item: item[:3])
            return await self._details_with_parents(repo, [item[3] for item in ranked])

    async def merge_tags(
        self, current_user: CurrentUser, source_tag_ids: List[int], target_tag_id: int
    ) -> MergeTagsResponse:
        """
        把 source 标签合并进 target 标签。
        所有问题的重新打标、计数更新、子标签迁移和 source 删除在同一个事务中完成，
        任何一步失败都会整体回滚并抛出 ConflictError。
        """
        user_id = require_user_id(current_user)
        source_ids = list(dict.fromkeys(source_tag_ids or []))
        if not source_ids:
            raise ValidationError("至少需要一个待合并的标签")
        if target_tag_id in source_ids:
            raise ValidationError("目标标签不能出现在待合并标签中")

        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                repo = TagRepository(session)
                found = await repo.get_tags_by_ids(source_ids + [target_tag_id])
                missing = [i for i in source_ids + [target_tag_id] if i not in found]
                if missing:
                    raise ValidationError(f"以下标签不存在: {missing}")
                target = found[target_tag_id]
                sources = [found[i] for i in source_ids]

                try:
                    affected_count = await self._apply_merge(repo, target, sources)
                    await session.commit()
                except SQLAlchemyError as e:
                    logger.error(
                        f"合并标签 {source_ids} -> {target_tag_id} 失败，正在回滚: {e}",
                        exc_info=True,
                    )
                    await session.rollback()
                    raise ConflictError("合并标签失败，所有更改已回滚")
                except ConflictError:
                    await session.rollback()
                    raise

                parent = await repo.get_tag(target.parent_tag_id) if target.parent_tag_id else None
                merged = to_tag_detail(target, parent)

        message = (
            f"已将 {len(sources)} 个标签合并到「{target.name}」，共更新 {affected_count} 个问题"
        )
        logger.info(f"用户 {user_id}: {message}")
        return MergeTagsResponse(success=True, message=message, merged_tag=merged)

    async def _apply_merge(self, repo: TagRepository, target: Tag, sources: List[Tag]) -> int:
        """在当前事务内执行合并的全部写入，返回受影响的问题数量。"""
        session = repo.session
        target_id = cast(int, target.id)
        source_ids = [cast(int, s.id) for s in sources]

        affected_ids = await repo.get_question_ids_for_tags(source_ids)
        await session.execute(
            delete(QuestionTagLink).where(
                cast(ColumnElement, QuestionTagLink.tag_id).in_(source_ids)
            )
        )
        for question_id in affected_ids:
            await repo.add_links(question_id, [target_id])

        # 子标签迁移到目标标签下，会形成循环的改为无父标签
        parent_map = await repo.get_parent_map()
        for source_id in source_ids:
            parent_map.pop(source_id, None)
        for child_id, parent_id in list(parent_map.items()):
            if parent_id not in source_ids:
                continue
            try:
                ensure_acyclic(child_id, target_id, {**parent_map, child_id: None})
                new_parent: Optional[int] = target_id
            except CycleError:
                new_parent = None
            parent_map[child_id] = new_parent
            await session.execute(
                update(Tag)
                .where(Tag.id == child_id)  # type: ignore
                .values(parent_tag_id=new_parent)
                .execution_options(synchronize_session=False)
            )
        if target.parent_tag_id in source_ids:
            target.parent_tag_id = parent_map.get(target_id)

        merged_synonyms: List[str] = list(target.synonyms or [])
        for source in sources:
            merged_synonyms.append(source.name)
            merged_synonyms.extend(source.synonyms or [])
        target.synonyms = normalize_synonyms(merged_synonyms, target.name)

        for source in sources:
            await session.delete(source)
        await session.flush()

        target.question_count = await repo.count_links([target_id])
        target.updated_at = utcnow()
        session.add(target)
        await session.flush()

        # 提交前校验：不能残留指向 source 的关联
        if await repo.count_links(source_ids):
            raise ConflictError("合并标签时检测到残留关联，所有更改已回滚")
        return len(affected_ids)

    async def recompute_question_counts(self) -> Dict[int, int]:
        """
        修复路径：按关联表重新计算所有标签的 question_count。
        返回被修正的 {tag_id: 正确数量}。
        """
        async with self.coordinator.taxonomy_scope():
            async with self.session_factory() as session:
                repo = TagRepository(session)
                counts = await repo.count_questions_per_tag()
                corrected: Dict[int, int] = {}
                for tag in await repo.get_all_tags():
                    expected = counts.get(cast(int, tag.id), 0)
                    if tag.question_count != expected:
                        corrected[cast(int, tag.id)] = expected
                        tag.question_count = expected
                        session.add(tag)
                await session.commit()
        if corrected:
            logger.warning(f"修正了 {len(corrected)} 个标签的问题计数: {corrected}")
        return corrected
