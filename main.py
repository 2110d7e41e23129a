import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from environments.config import AppConfig
from environments.variables import load_config
from scanning.context import create_context
from scanning.coordinator import ScanCoordinator
from api.tools import register_tools

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_lifespan(config: AppConfig):
    """서버 수명주기: 인덱스 열기, 스캔 시작, 종료 시 정리"""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[ScanCoordinator]:
        context = await create_context(config)
        coordinator = ScanCoordinator(context)
        await coordinator.start()
        try:
            yield coordinator
        finally:
            await coordinator.shutdown()
            await context.close()

    return lifespan


def create_app() -> FastMCP:
    """애플리케이션 초기화"""

    # 설정 로드
    config = load_config()

    # FastMCP 서버
    mcp = FastMCP("aas-index-server", lifespan=create_lifespan(config))

    # 도구 등록
    register_tools(mcp)

    logger.info(f"✅ Application initialized (content root: {config.content_root})")

    return mcp


# ================================================================
# 🚀 실행
# ================================================================
if __name__ == "__main__":
    mcp = create_app()

    logger.info("🚀 Starting AAS index MCP server...")
    mcp.run()
