import logging
import os

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# 确保表被导入，以便 SQLModel.metadata.create_all 能够工作
import shared.models  # noqa: F401
from shared.config import DatabaseConfig

logger = logging.getLogger(__name__)


def _is_sqlite(url) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def create_engine(database_config: DatabaseConfig) -> AsyncEngine:
    """
    根据配置创建异步引擎。
    SQLite 连接上的每个事务都以 BEGIN IMMEDIATE 开始：写锁在事务开头就拿到，
    并发事务在 busy_timeout 内排队，而不是在升级锁时互相死锁。
    """
    connect_args = {}
    if _is_sqlite(database_config.url):
        connect_args["timeout"] = database_config.busy_timeout

    engine = create_async_engine(
        database_config.url, echo=database_config.echo, connect_args=connect_args
    )

    if _is_sqlite(database_config.url):
        busy_timeout_ms = int(database_config.busy_timeout * 1000)

        @event.listens_for(engine.sync_engine, "connect")
        def _setup_sqlite_on_connect(dbapi_connection, connection_record):
            # 关闭驱动自带的 BEGIN，由下面的 begin 事件自行发出
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            finally:
                cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine):
    """创建数据目录和所有表。"""
    database = engine.url.database
    if _is_sqlite(engine.url) and database and database != ":memory:":
        db_dir = os.path.dirname(database)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("数据库表结构已初始化")


async def close_db(engine: AsyncEngine):
    """
    关闭数据库引擎，释放连接池。
    """
    logger.info("正在关闭数据库连接池...")
    await engine.dispose()
    logger.info("数据库连接池已关闭。")
