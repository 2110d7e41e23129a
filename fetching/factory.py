import logging

from environments.config import AppConfig
from core.exceptions import ConfigurationError
from core.models import Endpoint, EndpointType
from fetching.aas_api import AASApiClient
from fetching.adapter import EndpointAdapter
from fetching.directory import DirectorySource
from indexing.converter import DocumentConverter
from indexing.keywords import KeywordDirectory

logger = logging.getLogger(__name__)


class AdapterFactory:
    """엔드포인트 타입별 어댑터 생성"""

    def __init__(self, config: AppConfig, keywords: KeywordDirectory):
        self.config = config
        self.keywords = keywords

    def create(self, endpoint: Endpoint) -> EndpointAdapter:
        converter = DocumentConverter(
            self.keywords,
            max_string_length=self.config.max_string_length,
            max_keyword_length=self.config.max_keyword_length,
        )

        logger.debug(f"Creating {endpoint.type.value} adapter for endpoint {endpoint.name}")
        if endpoint.type == EndpointType.AAS_API:
            if endpoint.version != "v3":
                raise ConfigurationError(f"AAS API version {endpoint.version} is not supported.")
            return AASApiClient(endpoint, converter, self.config)

        if endpoint.type == EndpointType.FILE_SYSTEM:
            return DirectorySource(endpoint, converter, self.config)

        raise ConfigurationError(f"Endpoint type {endpoint.type.value} is not supported.")
