import logging
from dataclasses import dataclass, field

from environments.config import AppConfig
from fetching.factory import AdapterFactory
from indexing.factory import create_index
from indexing.keywords import KeywordDirectory
from indexing.store import AASIndex
from scanning.tasks import TaskRegistry

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide services, created at start and closed on shutdown"""
    config: AppConfig
    keywords: KeywordDirectory
    index: AASIndex
    adapters: AdapterFactory
    tasks: TaskRegistry = field(default_factory=TaskRegistry)

    async def close(self) -> None:
        await self.index.close()
        logger.info("Application context closed")


async def create_context(config: AppConfig) -> AppContext:
    keywords = KeywordDirectory(config.keyword_path)
    await keywords.wait()

    index = await create_index(config)
    return AppContext(
        config=config,
        keywords=keywords,
        index=index,
        adapters=AdapterFactory(config, keywords),
    )
