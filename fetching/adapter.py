"""Endpoint adapter contract consumed by the scan driver."""

from typing import Optional, Protocol

from core.models import AASLabel, PagedResult, ScannedDocument


class EndpointAdapter(Protocol):
    """Connection to one remote AAS source"""

    async def open(self) -> None:
        """Connect; raises EndpointConnectionError when the endpoint is unreachable."""
        ...

    async def close(self) -> None:
        """Release the connection. Must be safe to call after a failed open."""
        ...

    async def next_page(self, cursor: Optional[str] = None) -> PagedResult[AASLabel]:
        """One page of the endpoint's AAS listing."""
        ...

    async def create_document(self, label: AASLabel) -> ScannedDocument:
        """Fetch and parse one AAS into its document and element records."""
        ...
