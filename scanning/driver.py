import logging
import threading
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Sequence

from core.models import (
    AASLabel,
    Document,
    Endpoint,
    Message,
    MessageLevel,
    ScanEndpointResult,
    ScanResult,
    ScanResultKind,
)
from core.utils import document_uuid, now_ms
from fetching.adapter import EndpointAdapter

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    MessageLevel.INFO: logging.INFO,
    MessageLevel.WARNING: logging.WARNING,
    MessageLevel.ERROR: logging.ERROR,
}


class ScanState(str, Enum):
    CREATED = "created"
    OPEN = "open"
    PAGING = "paging"
    ERROR = "error"
    CLOSING = "closing"
    CLOSED = "closed"


class EndpointScanDriver:
    """엔드포인트 스캔 및 저장된 문서와의 비교"""

    def __init__(
        self,
        task_id: int,
        endpoint: Endpoint,
        adapter: EndpointAdapter,
        reference: Optional[Dict[str, Document]] = None,
        cancelled: Optional[threading.Event] = None,
    ):
        self.task_id = task_id
        self.endpoint = endpoint
        self.adapter = adapter
        self.reference = reference or {}
        self.cancelled = cancelled or threading.Event()
        self.state = ScanState.CREATED
        self.messages: List[Message] = []
        self._seen = set()
        self._counts = {ScanResultKind.ADD: 0, ScanResultKind.UPDATE: 0, ScanResultKind.REMOVE: 0}

    async def scan(self) -> AsyncIterator[ScanResult]:
        completed = False
        try:
            await self.adapter.open()
            self.state = ScanState.OPEN

            self.state = ScanState.PAGING
            cursor = None
            while not self._is_cancelled():
                page = await self.adapter.next_page(cursor)
                async for result in self._process_page(page.result):
                    yield result

                cursor = page.cursor
                if cursor is None:
                    completed = not self._is_cancelled()
                    break

            if completed:
                for result in self._removed():
                    yield result
        except Exception as e:
            self.state = ScanState.ERROR
            self._log(MessageLevel.ERROR, f"Scan of endpoint {self.endpoint.name} failed: {e}")
        finally:
            await self._close()

        yield self._end_result()

    async def _process_page(self, labels: Sequence[AASLabel]) -> AsyncIterator[ScanEndpointResult]:
        for label in labels:
            if self._is_cancelled():
                return

            uuid = document_uuid(self.endpoint.name, label.id)
            if uuid in self._seen:
                continue
            self._seen.add(uuid)

            try:
                scanned = await self.adapter.create_document(label)
            except Exception as e:
                self._log(MessageLevel.WARNING, f"AAS {label.id_short} [{label.id}] skipped: {e}")
                continue

            stored = self.reference.get(scanned.document.uuid)
            if stored is None:
                kind = ScanResultKind.ADD
            elif stored.content_hash != scanned.document.content_hash:
                kind = ScanResultKind.UPDATE
            else:
                continue

            self._counts[kind] += 1
            yield ScanEndpointResult(
                kind=kind,
                task_id=self.task_id,
                endpoint=self.endpoint,
                document=scanned.document,
                elements=scanned.elements,
            )

    def _removed(self) -> List[ScanEndpointResult]:
        results = []
        for uuid, document in self.reference.items():
            if uuid in self._seen:
                continue

            self._counts[ScanResultKind.REMOVE] += 1
            results.append(ScanEndpointResult(
                kind=ScanResultKind.REMOVE,
                task_id=self.task_id,
                endpoint=self.endpoint,
                document=document,
            ))

        return results

    async def _close(self) -> None:
        if self._is_cancelled():
            self._log(MessageLevel.WARNING, f"Scan of endpoint {self.endpoint.name} cancelled.")

        self.state = ScanState.CLOSING
        try:
            await self.adapter.close()
        except Exception as e:
            self._log(MessageLevel.WARNING, f"Closing endpoint {self.endpoint.name} failed: {e}")

        self.state = ScanState.CLOSED

    def _end_result(self) -> ScanResult:
        self._log(
            MessageLevel.INFO,
            f"Scan of endpoint {self.endpoint.name} finished: "
            f"{self._counts[ScanResultKind.ADD]} added, "
            f"{self._counts[ScanResultKind.UPDATE]} updated, "
            f"{self._counts[ScanResultKind.REMOVE]} removed",
        )
        return ScanResult(kind=ScanResultKind.END, task_id=self.task_id, messages=list(self.messages))

    def _is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def _log(self, level: MessageLevel, text: str) -> None:
        logger.log(LOG_LEVELS[level], text)
        self.messages.append(Message(level=level, text=text, timestamp=now_ms()))
