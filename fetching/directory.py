import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote, urlsplit

from environments.config import AppConfig
from core.exceptions import EndpointConnectionError
from core.models import AASLabel, Endpoint, PagedResult, PagingMetadata, ScannedDocument
from indexing.converter import DocumentConverter

logger = logging.getLogger(__name__)


class DirectorySource:
    """로컬 디렉터리의 AAS JSON 파일"""

    def __init__(self, endpoint: Endpoint, converter: DocumentConverter, config: AppConfig):
        self.endpoint = endpoint
        self.converter = converter
        self.config = config
        self.root = Path(unquote(urlsplit(endpoint.url).path))
        self._files: List[Path] = []
        self._labels: Dict[str, Path] = {}

    async def open(self) -> None:
        if not self.root.is_dir():
            raise EndpointConnectionError(f"{self.root} is not a directory.")

        self._files = await asyncio.to_thread(self._list_files)
        self._labels.clear()

    async def close(self) -> None:
        self._files = []
        self._labels.clear()

    async def next_page(self, cursor: Optional[str] = None) -> PagedResult[AASLabel]:
        start = int(cursor) if cursor else 0
        end = start + self.config.page_size

        labels = []
        for file in self._files[start:end]:
            try:
                environment = await self._read(file)
                shell = environment["assetAdministrationShells"][0]
            except (OSError, ValueError, KeyError, IndexError, TypeError) as e:
                logger.warning(f"{file.name} is not a valid AAS environment: {e}")
                continue

            self._labels[shell["id"]] = file
            labels.append(AASLabel(id=shell["id"], id_short=shell.get("idShort", "")))

        next_cursor = str(end) if end < len(self._files) else None
        return PagedResult[AASLabel](result=labels, paging_metadata=PagingMetadata(cursor=next_cursor))

    async def create_document(self, label: AASLabel) -> ScannedDocument:
        file = self._labels.get(label.id)
        if file is None:
            raise EndpointConnectionError(f"{label.id} not found in {self.root}.")

        environment = await self._read(file)
        address = file.relative_to(self.root).as_posix()
        return self.converter.to_scanned_document(self.endpoint.name, address, environment)

    def _list_files(self) -> List[Path]:
        return sorted(path for path in self.root.rglob("*.json") if path.is_file())

    @staticmethod
    async def _read(file: Path) -> dict:
        text = await asyncio.to_thread(file.read_text, encoding="utf-8")
        return json.loads(text)
