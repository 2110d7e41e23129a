import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from core.exceptions import IndexStoreError
from core.models import Document, Element, Endpoint
from indexing.store import AASIndex

logger = logging.getLogger(__name__)


class JsonFileIndex(AASIndex):
    """JSON 파일 인덱스"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.documents: List[Document] = []
        self.endpoints: List[Endpoint] = []
        self.elements: List[Element] = []
        self._writer = asyncio.Lock()

    async def open(self) -> None:
        if not self.path.exists():
            logger.info(f"Creating new index file {self.path}")
            return

        try:
            data = json.loads(await asyncio.to_thread(self.path.read_text, encoding="utf-8"))
            self.documents = [Document.model_validate(item) for item in data.get("documents", [])]
            self.endpoints = [Endpoint.model_validate(item) for item in data.get("endpoints", [])]
            self.elements = [Element.model_validate(item) for item in data.get("elements", [])]
        except (OSError, ValueError) as e:
            raise IndexStoreError(f"Failed to read index file {self.path}: {e}")

        logger.info(
            f"Loaded {len(self.documents)} documents, "
            f"{len(self.endpoints)} endpoints from {self.path}"
        )

    # ================================================================
    # Endpoints
    # ================================================================

    async def put_endpoint(self, endpoint: Endpoint) -> Optional[Endpoint]:
        old = None
        for i, item in enumerate(self.endpoints):
            if item.name == endpoint.name:
                old = item
                self.endpoints[i] = endpoint
                break
        else:
            self.endpoints.append(endpoint)

        await self._write()
        return old

    async def find_endpoint(self, name: str) -> Optional[Endpoint]:
        return next((item for item in self.endpoints if item.name == name), None)

    async def remove_endpoint(self, name: str) -> bool:
        if not any(item.name == name for item in self.endpoints):
            return False

        uuids = {item.uuid for item in self.documents if item.endpoint == name}
        self.endpoints = [item for item in self.endpoints if item.name != name]
        self.documents = [item for item in self.documents if item.endpoint != name]
        self.elements = [item for item in self.elements if item.uuid not in uuids]
        await self._write()
        return True

    async def list_endpoints(self) -> List[Endpoint]:
        return list(self.endpoints)

    # ================================================================
    # Documents
    # ================================================================

    async def put_document(
        self,
        document: Document,
        elements: Optional[Sequence[Element]] = None,
    ) -> None:
        for i, item in enumerate(self.documents):
            if item.uuid == document.uuid:
                self.documents[i] = document
                break
        else:
            self.documents.append(document)

        if elements is not None:
            self._replace_elements(document.uuid, elements)

        await self._write()

    async def remove_document(self, uuid: str) -> bool:
        count = len(self.documents)
        self.documents = [item for item in self.documents if item.uuid != uuid]
        if len(self.documents) == count:
            return False

        self.elements = [item for item in self.elements if item.uuid != uuid]
        await self._write()
        return True

    async def get_document(self, uuid: str) -> Optional[Document]:
        return next((item for item in self.documents if item.uuid == uuid), None)

    async def count_documents(self, endpoint_name: Optional[str] = None) -> int:
        if endpoint_name is None:
            return len(self.documents)
        return sum(1 for item in self.documents if item.endpoint == endpoint_name)

    async def list_documents(self, endpoint_name: str) -> List[Document]:
        return [item for item in self.documents if item.endpoint == endpoint_name]

    # ================================================================
    # Elements
    # ================================================================

    async def replace_elements(self, uuid: str, elements: Sequence[Element]) -> None:
        self._replace_elements(uuid, elements)
        await self._write()

    async def get_elements(self, uuid: str) -> List[Element]:
        return [item for item in self.elements if item.uuid == uuid]

    def _replace_elements(self, uuid: str, elements: Sequence[Element]) -> None:
        kept = [item for item in self.elements if item.uuid != uuid]
        self.elements = kept + [item.model_copy(update={"uuid": uuid}) for item in elements]

    # ================================================================
    # Lifecycle
    # ================================================================

    async def clear(self) -> None:
        self.documents = []
        self.endpoints = []
        self.elements = []
        await self._write()

    async def _write(self) -> None:
        async with self._writer:
            text = json.dumps({
                "documents": [item.to_wire() for item in self.documents],
                "endpoints": [item.to_wire() for item in self.endpoints],
                "elements": [item.to_wire() for item in self.elements],
            })
            try:
                await asyncio.to_thread(self._replace_file, text)
            except OSError as e:
                raise IndexStoreError(f"Failed to write index file {self.path}: {e}")

    def _replace_file(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp = self.path.with_suffix(self.path.suffix + ".tmp")
        temp.write_text(text, encoding="utf-8")
        os.replace(temp, self.path)
