import logging

from mcp.server.fastmcp import Context, FastMCP

from core.exceptions import AASIndexError, DocumentNotFoundError
from environments.config import url_to_endpoint
from scanning.coordinator import ScanCoordinator

logger = logging.getLogger(__name__)


def register_tools(mcp: FastMCP):
    """MCP 도구 등록"""

    # ================================================================
    # 엔드포인트 도구
    # ================================================================

    @mcp.tool()
    async def list_endpoints(ctx: Context) -> str:
        """
        등록된 엔드포인트 목록

        Returns:
            엔드포인트 목록 (마크다운)
        """
        return await format_endpoints(_coordinator(ctx))

    @mcp.tool()
    async def add_endpoint(url: str, ctx: Context) -> str:
        """
        엔드포인트 추가 후 스캔 시작

        Args:
            url: 엔드포인트 URL (예: http://localhost:5001/?name=demo&version=v3)

        Returns:
            결과 메시지
        """
        return await add_endpoint_by_url(_coordinator(ctx), url)

    @mcp.tool()
    async def remove_endpoint(name: str, ctx: Context) -> str:
        """
        엔드포인트와 인덱싱된 문서 삭제

        Args:
            name: 엔드포인트 이름
        """
        return await remove_endpoint_by_name(_coordinator(ctx), name)

    # ================================================================
    # 스캔 도구
    # ================================================================

    @mcp.tool()
    async def scan_endpoint(name: str, ctx: Context) -> str:
        """
        엔드포인트 스캔 (백그라운드)

        Args:
            name: 엔드포인트 이름

        Returns:
            시작 메시지
        """
        return await start_scan(_coordinator(ctx), name)

    @mcp.tool()
    async def cancel_scan(task_id: int, ctx: Context) -> str:
        """
        진행 중인 스캔 취소

        Args:
            task_id: 스캔 작업 ID
        """
        if await _coordinator(ctx).cancel(task_id):
            return f"Task {task_id} 취소를 요청했습니다."
        return f"Task {task_id}는 실행 중이 아닙니다."

    @mcp.tool()
    async def scan_templates(ctx: Context) -> str:
        """Submodel 템플릿 스캔"""
        task = await _coordinator(ctx).scan_templates()
        return f"템플릿 스캔을 시작했습니다 (task {task.id})."

    # ================================================================
    # 조회 도구
    # ================================================================

    @mcp.tool()
    async def get_document(uuid: str, ctx: Context) -> dict:
        """
        인덱싱된 문서와 요소 조회

        Args:
            uuid: 문서 UUID
        """
        return await document_details(_coordinator(ctx), uuid)

    @mcp.tool()
    async def get_index_status(ctx: Context) -> dict:
        """
        인덱스 상태 조회

        Returns:
            상태 정보
        """
        return await index_status(_coordinator(ctx))


# ================================================================
# 헬퍼 함수
# ================================================================

def _coordinator(ctx: Context) -> ScanCoordinator:
    return ctx.request_context.lifespan_context


def error_message(error: AASIndexError) -> str:
    return f"❌ {type(error).__name__} (status {error.status_code}): {error}"


async def format_endpoints(coordinator: ScanCoordinator) -> str:
    endpoints = await coordinator.index.list_endpoints()
    if not endpoints:
        return "등록된 엔드포인트가 없습니다."

    output = [f"# Endpoints ({len(endpoints)})", ""]
    for endpoint in endpoints:
        count = await coordinator.index.count_documents(endpoint.name)
        schedule = endpoint.schedule.type.value if endpoint.schedule else "default"
        output.extend([
            f"## {endpoint.name}",
            f"**URL**: {endpoint.url}",
            f"**Type**: {endpoint.type.value} {endpoint.version}",
            f"**Schedule**: {schedule}",
            f"**Documents**: {count}",
            "",
        ])

    return "\n".join(output)


async def add_endpoint_by_url(coordinator: ScanCoordinator, url: str) -> str:
    try:
        endpoint = url_to_endpoint(url)
        task = await coordinator.add_endpoint(endpoint)
    except AASIndexError as e:
        logger.error(f"Adding endpoint {url} failed: {e}")
        return error_message(e)

    if task is None:
        return f"✅ 엔드포인트 '{endpoint.name}'를 추가했습니다."
    return f"✅ 엔드포인트 '{endpoint.name}'를 추가했습니다. 스캔 진행 중 (task {task.id})."


async def remove_endpoint_by_name(coordinator: ScanCoordinator, name: str) -> str:
    try:
        await coordinator.remove_endpoint(name)
    except AASIndexError as e:
        logger.error(f"Removing endpoint {name} failed: {e}")
        return error_message(e)

    return f"🗑️ 엔드포인트 '{name}'를 삭제했습니다."


async def start_scan(coordinator: ScanCoordinator, name: str) -> str:
    try:
        task = await coordinator.scan_endpoint(name)
    except AASIndexError as e:
        logger.error(f"Scan of endpoint {name} not started: {e}")
        return error_message(e)

    return f"'{name}' 스캔 진행 중 (task {task.id}). 'get_index_status'로 상태 확인하세요."


async def document_details(coordinator: ScanCoordinator, uuid: str) -> dict:
    document = await coordinator.index.get_document(uuid)
    if document is None:
        error = DocumentNotFoundError(uuid)
        return {"error": type(error).__name__, "status": error.status_code, "message": str(error)}

    elements = await coordinator.index.get_elements(uuid)
    return {
        "document": document.to_wire(),
        "elements": [element.to_wire() for element in elements],
    }


async def index_status(coordinator: ScanCoordinator) -> dict:
    endpoints = await coordinator.index.list_endpoints()
    return {
        "endpoints": len(endpoints),
        "documents": await coordinator.index.count_documents(),
        "templates": len(coordinator.templates),
        "tasks": [
            {
                "id": task.id,
                "type": task.type.value,
                "endpoint": task.endpoint_name,
                "state": task.state.value,
                "start": task.start,
            }
            for task in coordinator.tasks.tasks
        ],
    }
