import asyncio
import logging
import threading
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Optional

from core.models import Document, Endpoint, Message, MessageLevel, ScanResult, ScanResultKind
from core.utils import now_ms
from fetching.factory import AdapterFactory
from scanning.driver import EndpointScanDriver
from scanning.templates import TemplateScan

logger = logging.getLogger(__name__)

ScanJob = Callable[[threading.Event], AsyncIterator[ScanResult]]


def endpoint_job(
    task_id: int,
    endpoint: Endpoint,
    adapters: AdapterFactory,
    reference: Dict[str, Document],
) -> ScanJob:
    """Endpoint scan; the adapter is created inside the worker's event loop"""
    async def job(cancelled: threading.Event) -> AsyncIterator[ScanResult]:
        adapter = adapters.create(endpoint)
        driver = EndpointScanDriver(task_id, endpoint, adapter, reference, cancelled)
        async for result in driver.scan():
            yield result

    return job


def templates_job(task_id: int, root: Path) -> ScanJob:
    async def job(cancelled: threading.Event) -> AsyncIterator[ScanResult]:
        async for result in TemplateScan(task_id, root).scan():
            yield result

    return job


class ScanWorker:
    """스캔 작업 실행 스레드 (결과는 channel 로 전달, End 는 항상 마지막)"""

    def __init__(
        self,
        task_id: int,
        job: ScanJob,
        channel: asyncio.Queue,
        loop: asyncio.AbstractEventLoop,
    ):
        self.task_id = task_id
        self.job = job
        self.channel = channel
        self.loop = loop
        self.cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"scan-worker-{task_id}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    async def join(self, timeout: Optional[float] = None) -> None:
        await asyncio.to_thread(self._thread.join, timeout)

    def _run(self) -> None:
        asyncio.run(self._relay())

    async def _relay(self) -> None:
        ended = False
        error = None
        try:
            async for result in self.job(self.cancelled):
                await self._post(result)
                if result.kind == ScanResultKind.END:
                    ended = True
                    break
        except Exception as e:
            logger.error(f"Scan task {self.task_id} failed: {e}")
            error = e

        if not ended:
            messages = []
            if error is not None:
                messages.append(Message(level=MessageLevel.ERROR, text=str(error), timestamp=now_ms()))
            await self._post(ScanResult(kind=ScanResultKind.END, task_id=self.task_id, messages=messages))

    async def _post(self, result: ScanResult) -> None:
        try:
            future = asyncio.run_coroutine_threadsafe(self.channel.put(result), self.loop)
            await asyncio.wrap_future(future)
        except RuntimeError as e:
            logger.warning(f"Result of scan task {self.task_id} dropped: {e}")
