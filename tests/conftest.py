import os
import sys
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from core.forum_core import ForumCore
from shared.config import AppConfig, DatabaseConfig, VotingConfig
from shared.models import User

AUTHOR = {"id": 1, "name": "alice"}
OTHER_USER = {"id": 2, "name": "bob"}


@pytest_asyncio.fixture(scope="function")
async def forum(tmp_path) -> AsyncGenerator[ForumCore, None]:
    """
    每个测试使用独立的文件数据库。
    多个会话并发时需要真实的文件锁，内存数据库无法模拟。
    """
    config = AppConfig(
        database=DatabaseConfig(
            url=f"sqlite+aiosqlite:///{tmp_path / 'forum.db'}", busy_timeout=10.0
        ),
        voting=VotingConfig(max_retries=3, retry_backoff=0),
    )
    async with ForumCore(config) as core:
        async with core.session_factory() as session:
            session.add(User(id=1, name="alice", display_name="Alice"))
            session.add(User(id=2, name="bob"))
            await session.commit()
        yield core


@pytest_asyncio.fixture(scope="function")
async def session_factory(forum: ForumCore) -> async_sessionmaker[AsyncSession]:
    return forum.session_factory
