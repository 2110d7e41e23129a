import asyncio
import logging
from typing import Dict, List, Optional, Set

from core.exceptions import AASIndexError, EndpointNotFoundError, ValidationError
from core.models import (
    Endpoint,
    ScanEndpointResult,
    ScanResult,
    ScanResultKind,
    ScanTemplatesResult,
    ScheduleType,
    TemplateDescriptor,
)
from core.utils import now_ms
from environments.config import url_to_endpoint
from scanning.context import AppContext
from scanning.driver import LOG_LEVELS
from scanning.tasks import Task, TaskState, TaskType
from scanning.worker import ScanWorker, endpoint_job, templates_job

logger = logging.getLogger(__name__)

TEMPLATES_TASK_NAME = "templates"


class ScanCoordinator:
    """스캔 결과를 인덱스에 반영하는 단일 writer"""

    def __init__(self, context: AppContext):
        self.context = context
        self.config = context.config
        self.index = context.index
        self.tasks = context.tasks
        self.tasks.on_empty = self._owner_idle
        self.templates: List[TemplateDescriptor] = []

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._channel: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._workers: Dict[int, ScanWorker] = {}
        self._finished: Dict[int, asyncio.Event] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._background: Set[asyncio.Task] = set()
        self._closing = False

    # ================================================================
    # Lifecycle
    # ================================================================

    async def start(self, scan: bool = True) -> None:
        self._loop = asyncio.get_running_loop()
        self._channel = asyncio.Queue(maxsize=self.config.result_queue_size)
        self._consumer = asyncio.create_task(self._consume())

        if not await self.index.list_endpoints():
            await self._seed_endpoints()

        if not scan:
            return

        for endpoint in await self.index.list_endpoints():
            if self._scans_on_start(endpoint):
                await self.scan_endpoint(endpoint.name)
        await self.scan_templates()

        logger.info(f"Scan coordinator started with {len(self.tasks)} scans")

    async def shutdown(self) -> None:
        self._closing = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        for worker in workers:
            await self.wait(worker.task_id, timeout=self.config.worker_join_timeout)
            await worker.join(timeout=self.config.worker_join_timeout)
            if worker.is_alive:
                logger.warning(f"Scan worker {worker.task_id} did not stop in time")

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        logger.info("Scan coordinator stopped")

    # ================================================================
    # Scans
    # ================================================================

    async def scan_endpoint(self, name: str, owner: object = None) -> Task:
        """엔드포인트 스캔 시작 (이미 실행 중이면 기존 작업 반환)"""
        endpoint = await self.index.get_endpoint(name)

        task = self.tasks.find(name, TaskType.SCAN_ENDPOINT)
        if task is not None:
            logger.info(f"Endpoint {name} is already being scanned (task {task.id})")
            return task

        task = self._register(name, owner, TaskType.SCAN_ENDPOINT)
        self._cancel_timer(name)

        try:
            reference = await self.index.snapshot(name)
        except Exception:
            self.tasks.delete(task.id)
            raise
        job = endpoint_job(task.id, endpoint, self.context.adapters, reference)
        self._start_worker(task, job)

        logger.info(f"Scan of endpoint {name} started (task {task.id}, {len(reference)} documents indexed)")
        return task

    async def scan_templates(self, owner: object = None) -> Task:
        task = self.tasks.find(TEMPLATES_TASK_NAME, TaskType.SCAN_TEMPLATES)
        if task is not None:
            return task

        task = self._register(TEMPLATES_TASK_NAME, owner, TaskType.SCAN_TEMPLATES)
        self._start_worker(task, templates_job(task.id, self.config.template_storage))
        return task

    async def cancel(self, task_id: int) -> bool:
        worker = self._workers.get(task_id)
        if worker is None:
            return False

        worker.cancel()
        logger.info(f"Cancellation of task {task_id} requested")
        return True

    async def wait(self, task_id: int, timeout: Optional[float] = None) -> None:
        """Wait until the End result of a task has been applied"""
        finished = self._finished.get(task_id)
        if finished is None:
            return

        try:
            await asyncio.wait_for(finished.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Task {task_id} did not end within {timeout} seconds")

    # ================================================================
    # Endpoints
    # ================================================================

    async def add_endpoint(self, endpoint: Endpoint) -> Optional[Task]:
        if await self.index.find_endpoint(endpoint.name) is not None:
            raise ValidationError(f"Endpoint '{endpoint.name}' already exists.")

        await self.index.put_endpoint(endpoint)
        logger.info(f"Endpoint {endpoint.name} added ({endpoint.url})")

        if self._scans_on_start(endpoint):
            return await self.scan_endpoint(endpoint.name)
        return None

    async def update_endpoint(self, endpoint: Endpoint) -> Optional[Task]:
        await self.index.get_endpoint(endpoint.name)

        self._cancel_timer(endpoint.name)
        await self._stop_scans(endpoint.name)
        await self.index.put_endpoint(endpoint)
        logger.info(f"Endpoint {endpoint.name} updated ({endpoint.url})")

        if self._scans_on_start(endpoint):
            return await self.scan_endpoint(endpoint.name)
        return None

    async def remove_endpoint(self, name: str) -> None:
        """엔드포인트 삭제 (실행 중인 스캔은 소유자와 관계없이 먼저 취소)"""
        self._cancel_timer(name)
        await self._stop_scans(name)

        if not await self.index.remove_endpoint(name):
            raise EndpointNotFoundError(name)
        logger.info(f"Endpoint {name} removed")

    # ================================================================
    # Result application
    # ================================================================

    async def _consume(self) -> None:
        while True:
            result = await self._channel.get()
            try:
                await self._apply(result)
            except Exception as e:
                logger.error(f"Applying result of task {result.task_id} failed: {e}")
            finally:
                self._channel.task_done()

    async def _apply(self, result: ScanResult) -> None:
        if result.kind == ScanResultKind.END:
            await self._end(result)
            return

        if isinstance(result, ScanTemplatesResult):
            self.templates = list(result.templates)
            return

        if not isinstance(result, ScanEndpointResult):
            logger.warning(f"Unexpected {result.type} from task {result.task_id}")
            return

        if await self.index.find_endpoint(result.endpoint.name) is None:
            logger.debug(f"Result for removed endpoint {result.endpoint.name} dropped")
            return

        if result.kind in (ScanResultKind.ADD, ScanResultKind.UPDATE):
            await self.index.put_document(result.document, result.elements)
        elif result.kind == ScanResultKind.REMOVE:
            await self.index.remove_document(result.document.uuid)

    async def _end(self, result: ScanResult) -> None:
        self._workers.pop(result.task_id, None)
        task = self.tasks.get(result.task_id)

        for message in result.messages:
            level = LOG_LEVELS.get(message.level, logging.INFO)
            logger.log(level, f"[task {result.task_id}] {message.text}")

        try:
            if task is not None:
                task.end = now_ms()
                task.state = TaskState.IDLE
                self.tasks.delete(task.id)
                logger.info(f"Task {task.id} ({task.type.value} {task.endpoint_name}) ended after {task.end - task.start} ms")

                if task.type == TaskType.SCAN_ENDPOINT:
                    await self._reschedule(task.endpoint_name)
        finally:
            finished = self._finished.pop(result.task_id, None)
            if finished is not None:
                finished.set()

    # ================================================================
    # Scheduling
    # ================================================================

    async def _reschedule(self, name: str) -> None:
        if self._closing:
            return

        endpoint = await self.index.find_endpoint(name)
        if endpoint is None:
            return

        delay = self._rescan_delay(endpoint)
        if delay is None:
            return

        self._cancel_timer(name)
        self._timers[name] = self._loop.call_later(delay, self._rescan, name)
        logger.debug(f"Next scan of endpoint {name} in {delay:.1f} s")

    def _rescan(self, name: str) -> None:
        self._timers.pop(name, None)
        task = asyncio.create_task(self._rescan_endpoint(name))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _rescan_endpoint(self, name: str) -> None:
        try:
            await self.scan_endpoint(name)
        except AASIndexError as e:
            logger.warning(f"Rescan of endpoint {name} not started: {e}")

    def _rescan_delay(self, endpoint: Endpoint) -> Optional[float]:
        schedule = endpoint.schedule
        if schedule is None:
            return self.config.scan_endpoint_timeout
        if schedule.type == ScheduleType.EVERY:
            if schedule.values and schedule.values[0] > 0:
                return schedule.values[0] / 1000
            return self.config.scan_endpoint_timeout
        return None

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    # ================================================================
    # Helpers
    # ================================================================

    def _register(self, name: str, owner: object, type: TaskType) -> Task:
        task = self.tasks.create_task(name, self._owner(owner), type)
        task.state = TaskState.IN_PROGRESS
        task.start = now_ms()
        self.tasks.set(task)
        return task

    def _start_worker(self, task: Task, job) -> None:
        worker = ScanWorker(task.id, job, self._channel, self._loop)
        self._workers[task.id] = worker
        self._finished[task.id] = asyncio.Event()
        worker.start()

    async def _stop_scans(self, name: str) -> None:
        running = [task for task in self.tasks.tasks if task.endpoint_name == name]
        for task in running:
            await self.cancel(task.id)
        for task in running:
            await self.wait(task.id, timeout=self.config.worker_join_timeout)

    async def _seed_endpoints(self) -> None:
        for url in self.config.endpoints:
            try:
                endpoint = url_to_endpoint(url)
            except ValidationError as e:
                logger.error(f"Configured endpoint skipped: {e}")
                continue

            await self.index.put_endpoint(endpoint)
            logger.info(f"Endpoint {endpoint.name} added from configuration")

    def _owner(self, owner: object) -> object:
        return self if owner is None else owner

    def _owner_idle(self, owner: object) -> None:
        if owner is not self:
            logger.debug(f"No scans left for owner {owner!r}")

    @staticmethod
    def _scans_on_start(endpoint: Endpoint) -> bool:
        return endpoint.schedule is None or endpoint.schedule.type != ScheduleType.MANUAL
