import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import unquote, urlsplit

from environments.config import AppConfig
from indexing.json_index import JsonFileIndex
from indexing.sqlite_index import SqliteIndex
from indexing.store import AASIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    """A supported index backend"""
    kind: str  # "json" | "sqlite"
    location: str


@dataclass(frozen=True)
class UnsupportedScheme:
    url: str


BackendResolution = Union[Ok, UnsupportedScheme]


def resolve_backend(url: str, config: AppConfig) -> BackendResolution:
    """Map the AAS_INDEX URL to a backend; an empty URL selects the default"""
    if not url:
        return Ok("json", str(Path(config.content_root) / "db.json"))

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    path = unquote(parts.netloc + parts.path)

    if scheme == "sqlite":
        return Ok("sqlite", path.lstrip("/") if path.endswith(":memory:") else path or ":memory:")
    if scheme in ("file", "json") and path:
        return Ok("json", path)

    return UnsupportedScheme(url)


async def create_index(config: AppConfig) -> AASIndex:
    """인덱스 생성 (지원하지 않는 URL이면 기본 JSON 인덱스 사용)"""
    resolution = resolve_backend(config.aas_index, config)
    if isinstance(resolution, UnsupportedScheme):
        logger.error(
            f"{resolution.url} is not a supported AAS index. "
            f"Falling back to the default index."
        )
        resolution = resolve_backend("", config)

    if resolution.kind == "sqlite":
        index: AASIndex = SqliteIndex(resolution.location)
    else:
        index = JsonFileIndex(Path(resolution.location))

    await index.open()
    return index

