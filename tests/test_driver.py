import threading
from typing import Dict, List, Optional

import pytest

from core.exceptions import EndpointConnectionError
from core.models import (
    AASLabel,
    Endpoint,
    EndpointType,
    MessageLevel,
    PagedResult,
    PagingMetadata,
    ScanResultKind,
    ScannedDocument,
)
from core.utils import document_uuid
from scanning.driver import EndpointScanDriver, ScanState

ENDPOINT = Endpoint(name="plant", url="http://plant:5001", type=EndpointType.AAS_API)


class FakeAdapter:
    """In-memory endpoint; ``pages`` lists the AAS ids of each page"""

    def __init__(
        self,
        converter,
        environments: Dict[str, dict],
        pages: List[List[str]],
        fail_open: bool = False,
        broken: tuple = (),
        on_page=None,
    ):
        self.converter = converter
        self.environments = environments
        self.pages = pages
        self.fail_open = fail_open
        self.broken = broken
        self.on_page = on_page
        self.opened = False
        self.closed = False
        self.requested_pages = 0

    async def open(self) -> None:
        if self.fail_open:
            raise EndpointConnectionError("connection refused")
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def next_page(self, cursor: Optional[str] = None) -> PagedResult[AASLabel]:
        index = int(cursor) if cursor else 0
        self.requested_pages += 1
        if self.on_page is not None:
            self.on_page(index)

        labels = [AASLabel(id=aas_id, id_short=aas_id) for aas_id in self.pages[index]]
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return PagedResult[AASLabel](result=labels, paging_metadata=PagingMetadata(cursor=next_cursor))

    async def create_document(self, label: AASLabel) -> ScannedDocument:
        if label.id in self.broken:
            raise EndpointConnectionError(f"{label.id} unavailable")
        return self.converter.to_scanned_document(ENDPOINT.name, label.id, self.environments[label.id])


@pytest.fixture
def environments(make_environment):
    return {f"aas{i}": make_environment(f"aas{i}", f"Pump{i}") for i in range(1, 6)}


async def _collect(driver: EndpointScanDriver) -> list:
    return [result async for result in driver.scan()]


async def _reference(converter, environments, ids) -> dict:
    documents = [converter.to_scanned_document(ENDPOINT.name, i, environments[i]).document for i in ids]
    return {document.uuid: document for document in documents}


class TestScan:
    @pytest.mark.asyncio
    async def test_new_endpoint_adds_every_document(self, converter, environments):
        adapter = FakeAdapter(converter, environments, [["aas1", "aas2"], ["aas3", "aas4"], ["aas5"]])
        driver = EndpointScanDriver(1, ENDPOINT, adapter)

        results = await _collect(driver)

        assert [r.kind for r in results] == [ScanResultKind.ADD] * 5 + [ScanResultKind.END]
        assert [r.document.id for r in results[:5]] == ["aas1", "aas2", "aas3", "aas4", "aas5"]
        assert all(r.task_id == 1 for r in results)
        assert results[0].elements
        assert adapter.requested_pages == 3
        assert adapter.closed
        assert driver.state == ScanState.CLOSED

    @pytest.mark.asyncio
    async def test_unchanged_documents_emit_nothing(self, converter, environments):
        reference = await _reference(converter, environments, list(environments))
        adapter = FakeAdapter(converter, environments, [list(environments)])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter, reference))

        assert [r.kind for r in results] == [ScanResultKind.END]
        assert results[0].messages[-1].text.endswith("0 added, 0 updated, 0 removed")

    @pytest.mark.asyncio
    async def test_changed_document_is_updated(self, converter, environments, make_environment):
        reference = await _reference(converter, environments, ["aas1", "aas2"])
        environments["aas2"] = make_environment("aas2", "Pump2", temperature="99")
        adapter = FakeAdapter(converter, environments, [["aas1", "aas2"]])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter, reference))

        assert [(r.kind, r.document.id) for r in results[:-1]] == [(ScanResultKind.UPDATE, "aas2")]

    @pytest.mark.asyncio
    async def test_unlisted_documents_are_removed(self, converter, environments):
        reference = await _reference(converter, environments, ["aas1", "aas2", "aas3"])
        adapter = FakeAdapter(converter, environments, [["aas1"], ["aas3"]])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter, reference))

        assert [(r.kind, r.document.id) for r in results[:-1]] == [(ScanResultKind.REMOVE, "aas2")]
        assert results[-1].kind == ScanResultKind.END

    @pytest.mark.asyncio
    async def test_duplicate_labels_are_processed_once(self, converter, environments):
        adapter = FakeAdapter(converter, environments, [["aas1", "aas1"], ["aas1", "aas2"]])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter))

        assert [r.document.id for r in results[:-1]] == ["aas1", "aas2"]

    @pytest.mark.asyncio
    async def test_broken_document_is_skipped(self, converter, environments):
        adapter = FakeAdapter(converter, environments, [["aas1", "aas2", "aas3"]], broken=("aas2",))

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter))

        assert [r.document.id for r in results[:-1]] == ["aas1", "aas3"]
        warnings = [m for m in results[-1].messages if m.level == MessageLevel.WARNING]
        assert len(warnings) == 1
        assert "aas2 unavailable" in warnings[0].text

    @pytest.mark.asyncio
    async def test_uuid_is_stable_per_endpoint(self, converter, environments):
        adapter = FakeAdapter(converter, environments, [["aas1"]])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter))

        assert results[0].document.uuid == document_uuid("plant", "aas1")


class TestFailures:
    @pytest.mark.asyncio
    async def test_open_failure_ends_with_error(self, converter, environments):
        reference = await _reference(converter, environments, ["aas1"])
        adapter = FakeAdapter(converter, environments, [["aas1"]], fail_open=True)
        driver = EndpointScanDriver(7, ENDPOINT, adapter, reference)

        results = await _collect(driver)

        assert len(results) == 1
        end = results[0]
        assert end.kind == ScanResultKind.END
        assert end.task_id == 7
        errors = [m for m in end.messages if m.level == MessageLevel.ERROR]
        assert "connection refused" in errors[0].text
        assert adapter.requested_pages == 0
        assert adapter.closed
        assert driver.state == ScanState.CLOSED

    @pytest.mark.asyncio
    async def test_page_failure_keeps_documents(self, converter, environments):
        reference = await _reference(converter, environments, ["aas5"])
        adapter = FakeAdapter(converter, environments, [["aas1"]])

        async def failing_page(cursor=None):
            raise EndpointConnectionError("timeout")

        adapter.next_page = failing_page
        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter, reference))

        assert [r.kind for r in results] == [ScanResultKind.END]
        assert adapter.closed

    @pytest.mark.asyncio
    async def test_close_failure_is_reported(self, converter, environments):
        adapter = FakeAdapter(converter, environments, [["aas1"]])

        async def failing_close():
            raise EndpointConnectionError("already closed")

        adapter.close = failing_close
        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter))

        assert results[-1].kind == ScanResultKind.END
        assert any("already closed" in m.text for m in results[-1].messages)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_between_pages(self, converter, environments):
        reference = await _reference(converter, environments, ["aas5"])
        cancelled = threading.Event()

        def cancel_after_first_page(index):
            if index == 1:
                cancelled.set()

        adapter = FakeAdapter(
            converter, environments, [["aas1", "aas2"], ["aas3", "aas4"]], on_page=cancel_after_first_page,
        )
        driver = EndpointScanDriver(1, ENDPOINT, adapter, reference, cancelled)

        results = await _collect(driver)

        assert [(r.kind, r.document.id) for r in results[:-1]] == [
            (ScanResultKind.ADD, "aas1"),
            (ScanResultKind.ADD, "aas2"),
        ]
        assert results[-1].kind == ScanResultKind.END
        assert any("cancelled" in m.text for m in results[-1].messages)
        assert adapter.closed

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, converter, environments):
        cancelled = threading.Event()
        cancelled.set()
        adapter = FakeAdapter(converter, environments, [["aas1"]])

        results = await _collect(EndpointScanDriver(1, ENDPOINT, adapter, None, cancelled))

        assert [r.kind for r in results] == [ScanResultKind.END]
        assert adapter.requested_pages == 0
        assert adapter.closed
