import logging
from typing import List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from environments.config import AppConfig
from core.exceptions import APIError, EndpointConnectionError
from core.models import AASLabel, Endpoint, PagedResult, PagingMetadata, ScannedDocument
from core.utils import encode_base64url
from indexing.converter import DocumentConverter

logger = logging.getLogger(__name__)


class AASApiClient:
    def __init__(
        self,
        endpoint: Endpoint,
        converter: DocumentConverter,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.converter = converter
        self.config = config
        self.transport = transport
        self.base_url = endpoint.url.rstrip("/")
        self.headers = {
            "Accept": "application/json",
            **(endpoint.headers or {}),
        }
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.config.request_timeout,
            transport=self.transport,
        )
        await self._get("/shells", params={"limit": 1})
        logger.debug(f"Connected to {self.base_url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def next_page(self, cursor: Optional[str] = None) -> PagedResult[AASLabel]:
        params = {"limit": self.config.page_size}
        if cursor:
            params["cursor"] = cursor

        data = await self._get("/shells", params=params)
        labels = [
            AASLabel(id=shell["id"], id_short=shell.get("idShort", ""))
            for shell in data.get("result", [])
            if "id" in shell
        ]
        next_cursor = (data.get("paging_metadata") or {}).get("cursor")
        return PagedResult[AASLabel](result=labels, paging_metadata=PagingMetadata(cursor=next_cursor))

    async def create_document(self, label: AASLabel) -> ScannedDocument:
        shell = await self._get(f"/shells/{encode_base64url(label.id)}")
        environment = {
            "assetAdministrationShells": [shell],
            "submodels": await self._read_submodels(shell),
        }
        return self.converter.to_scanned_document(self.endpoint.name, label.id, environment)

    async def _read_submodels(self, shell: dict) -> List[dict]:
        submodels = []
        for reference in shell.get("submodels") or []:
            keys = reference.get("keys") or []
            if not keys:
                continue

            submodel_id = keys[0]["value"]
            try:
                submodels.append(await self._get(f"/submodels/{encode_base64url(submodel_id)}"))
            except APIError as e:
                logger.warning(f"Submodel {submodel_id} of {shell.get('idShort')} skipped: {e}")

        return submodels

    async def _get(self, path: str, params: Optional[dict] = None) -> dict:
        if self._client is None:
            raise EndpointConnectionError(f"{self.base_url} is not open.")

        try:
            response = await self._request(path, params)
        except httpx.TransportError as e:
            raise EndpointConnectionError(f"{self.base_url}{path}: {e}")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise APIError("AAS", e.response.status_code, str(e))

        try:
            return response.json()
        except ValueError as e:
            raise EndpointConnectionError(f"{self.base_url}{path} returned invalid JSON: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, path: str, params: Optional[dict]) -> httpx.Response:
        return await self._client.get(path, params=params)
