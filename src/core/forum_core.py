import logging
from typing import Optional

from content.content_service import ContentService
from core.coordinator import ConsistencyCoordinator
from core.image_service import ImageResolver, StaticImageResolver
from search.search_service import SearchService
from shared.config import AppConfig
from shared.database import close_db, create_engine, create_session_factory, init_db
from tag_system.tag_service import TagService
from voting.ledger_service import VoteLedgerService
from voting.tally_service import VoteTallyService

logger = logging.getLogger(__name__)


class ForumCore:
    """
    组装数据库、协调器和全部服务。
    同一进程内的所有服务共享一个协调器，锁才能覆盖彼此的写入。
    """

    def __init__(self, config: AppConfig, image_resolver: Optional[ImageResolver] = None):
        self.config = config
        self.engine = create_engine(config.database)
        self.session_factory = create_session_factory(self.engine)
        self.coordinator = ConsistencyCoordinator(
            max_retries=config.voting.max_retries,
            retry_backoff=config.voting.retry_backoff,
        )
        self.image_resolver = image_resolver or StaticImageResolver(config.images.base_url)

        self.tag_service = TagService(self.session_factory, self.coordinator, config.listing)
        self.vote_ledger_service = VoteLedgerService(self.session_factory, self.coordinator)
        self.vote_tally_service = VoteTallyService(self.session_factory)
        self.search_service = SearchService(
            self.session_factory, config.listing, self.image_resolver
        )
        self.content_service = ContentService(
            self.session_factory, self.coordinator, self.image_resolver
        )

    async def start(self):
        await init_db(self.engine)
        logger.info("核心服务已就绪")

    async def repair(self):
        """
        修复路径：从关联表和投票记录重新计算全部派生计数。
        """
        corrected_tags = await self.tag_service.recompute_question_counts()
        corrected_tallies = await self.vote_tally_service.recompute_all_vote_counts()
        logger.info(
            f"计数修复完成：标签 {len(corrected_tags)} 个，投票缓存 {corrected_tallies} 个"
        )
        return corrected_tags, corrected_tallies

    async def close(self):
        await close_db(self.engine)

    async def __aenter__(self) -> "ForumCore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
