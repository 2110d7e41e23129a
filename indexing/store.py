from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from core.exceptions import EndpointNotFoundError
from core.models import Document, Element, Endpoint


class AASIndex(ABC):
    """Index of endpoints, AAS documents and their searchable elements"""

    # ================================================================
    # Endpoints
    # ================================================================

    @abstractmethod
    async def put_endpoint(self, endpoint: Endpoint) -> Optional[Endpoint]:
        """Insert or replace an endpoint; returns the replaced description"""

    @abstractmethod
    async def find_endpoint(self, name: str) -> Optional[Endpoint]:
        ...

    async def get_endpoint(self, name: str) -> Endpoint:
        endpoint = await self.find_endpoint(name)
        if endpoint is None:
            raise EndpointNotFoundError(name)
        return endpoint

    @abstractmethod
    async def remove_endpoint(self, name: str) -> bool:
        """Remove an endpoint together with its documents and elements"""

    @abstractmethod
    async def list_endpoints(self) -> List[Endpoint]:
        ...

    # ================================================================
    # Documents
    # ================================================================

    @abstractmethod
    async def put_document(
        self,
        document: Document,
        elements: Optional[Sequence[Element]] = None,
    ) -> None:
        """Insert or replace a document; ``elements`` replaces its element set in the same step"""

    @abstractmethod
    async def remove_document(self, uuid: str) -> bool:
        ...

    @abstractmethod
    async def get_document(self, uuid: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def count_documents(self, endpoint_name: Optional[str] = None) -> int:
        ...

    @abstractmethod
    async def list_documents(self, endpoint_name: str) -> List[Document]:
        ...

    async def snapshot(self, endpoint_name: str) -> Dict[str, Document]:
        """Snapshot of an endpoint's documents keyed by uuid"""
        return {document.uuid: document for document in await self.list_documents(endpoint_name)}

    # ================================================================
    # Elements
    # ================================================================

    @abstractmethod
    async def replace_elements(self, uuid: str, elements: Sequence[Element]) -> None:
        """Delete-then-insert the full element set of a document"""

    @abstractmethod
    async def get_elements(self, uuid: str) -> List[Element]:
        ...

    # ================================================================
    # Lifecycle
    # ================================================================

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass
