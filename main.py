import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"))

from core.forum_core import ForumCore
from shared.config import CONFIG_PATH, load_config

logger = logging.getLogger(__name__)


async def main(config_path: str = CONFIG_PATH):
    """初始化数据库并执行一次计数修复。"""
    config = load_config(config_path)
    async with ForumCore(config) as core:
        await core.repair()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(main(*sys.argv[1:2]))
    except KeyboardInterrupt:
        logger.info("已中断。")
