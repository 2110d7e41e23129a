import json
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple
from urllib.parse import parse_qs, urlsplit, urlunsplit

from core.exceptions import ValidationError
from core.models import Endpoint, EndpointSchedule, EndpointType
from core.utils import decode_base64url


@dataclass(frozen=True)
class AppConfig:
    """애플리케이션 전역 설정"""
    # Storage
    content_root: Path = None
    assets: Path = None
    aas_index: str = ""
    template_storage: Path = None

    # Endpoints configured at first start
    endpoints: Tuple[str, ...] = ()

    # Scanning
    scan_endpoint_timeout: float = 60.0
    result_queue_size: int = 100
    worker_join_timeout: float = 30.0

    # API
    request_timeout: float = 10.0
    page_size: int = 100

    # Keywords
    keyword_file: str = "keywords.json"
    max_string_length: int = 128
    max_keyword_length: int = 512

    def __post_init__(self):
        if self.content_root is None:
            object.__setattr__(
                self,
                'content_root',
                Path.home() / ".aas_index"
            )
        if self.assets is None:
            object.__setattr__(self, 'assets', Path(self.content_root) / "assets")
        if self.template_storage is None:
            object.__setattr__(self, 'template_storage', Path(self.content_root) / "templates")

    @property
    def keyword_path(self) -> Path:
        return Path(self.assets) / self.keyword_file


def url_to_endpoint(url: str) -> Endpoint:
    """Endpoint from a URL such as ``http://host:5001/?version=v3&name=demo``

    ``schedule`` and ``headers`` are base64url encoded JSON.
    """
    parts = urlsplit(url)
    if not parts.scheme:
        raise ValidationError(f"'{url}' is not a valid endpoint URL.")

    query = {key: values[0] for key, values in parse_qs(parts.query).items()}
    endpoint_type = _endpoint_type(parts.scheme)
    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    name = query.get("name") or _endpoint_name(parts)

    try:
        schedule = None
        if "schedule" in query:
            schedule = EndpointSchedule.model_validate(json.loads(decode_base64url(query["schedule"])))

        headers = None
        if "headers" in query:
            headers = json.loads(decode_base64url(query["headers"]))

        return Endpoint(
            name=name,
            url=base,
            type=endpoint_type,
            version=query.get("version", "v3"),
            schedule=schedule,
            headers=headers,
        )
    except ValueError as e:
        # pydantic.ValidationError 도 ValueError
        raise ValidationError(f"Invalid endpoint URL '{url}': {e}")


def _endpoint_type(scheme: str) -> EndpointType:
    scheme = scheme.lower()
    if scheme in ("http", "https"):
        return EndpointType.AAS_API
    if scheme == "opc.tcp":
        return EndpointType.OPC_UA
    if scheme == "file":
        return EndpointType.FILE_SYSTEM
    if scheme in ("webdav", "dav", "davs"):
        return EndpointType.WEBDAV

    raise ValidationError(f"'{scheme}' is not a supported endpoint scheme.")


def _endpoint_name(parts) -> str:
    segments = [segment for segment in parts.path.split("/") if segment]
    if parts.scheme == "file" and segments:
        return segments[-1]
    return parts.hostname or parts.netloc or "endpoint"
