from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class AASModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ================================================================
# Endpoints
# ================================================================

class EndpointType(str, Enum):
    AAS_API = "AAS_API"
    OPC_UA = "OPC_UA"
    WEBDAV = "WebDAV"
    FILE_SYSTEM = "FileSystem"


class ScheduleType(str, Enum):
    MANUAL = "manual"
    ONCE = "once"
    EVERY = "every"


class EndpointSchedule(AASModel):
    type: ScheduleType
    values: List[int] = Field(default_factory=list)


class Endpoint(AASModel):
    """A remote source of AAS documents"""
    name: str
    url: str
    type: EndpointType
    version: str = "v3"
    schedule: Optional[EndpointSchedule] = None
    headers: Optional[Dict[str, str]] = None


# ================================================================
# Documents and elements
# ================================================================

class AASLabel(AASModel):
    """The label of an AAS as listed by an endpoint"""
    id: str
    id_short: str = ""


class Document(AASModel):
    """One indexed Asset Administration Shell"""
    uuid: str
    endpoint: str
    id: str
    address: str
    content_hash: int
    id_short: str
    asset_id: Optional[str] = None
    thumbnail: Optional[str] = None
    timestamp: int = 0


class ValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class Element(AASModel):
    """A flattened, typed fact of a document"""
    uuid: str
    model_type: str
    id: Optional[str] = None
    id_short: str
    value_type: Optional[ValueType] = None
    value: Union[bool, float, datetime, str, None] = None

    @model_validator(mode="after")
    def _coerce_value(self):
        if self.value is None or self.value_type is None:
            return self

        if self.value_type == ValueType.DATE and isinstance(self.value, str):
            self.value = datetime.fromisoformat(self.value)
        elif self.value_type == ValueType.NUMBER and not isinstance(self.value, float):
            self.value = float(self.value)
        elif self.value_type == ValueType.BOOLEAN and not isinstance(self.value, bool):
            self.value = str(self.value).lower() in ("true", "1")
        elif self.value_type == ValueType.STRING and not isinstance(self.value, str):
            self.value = str(self.value)

        return self


class ScannedDocument(AASModel):
    """Document plus its element set, as built by an endpoint adapter"""
    document: Document
    elements: List[Element] = Field(default_factory=list)


class TemplateEndpoint(AASModel):
    type: str = "file"
    address: str


class TemplateDescriptor(AASModel):
    id_short: str
    id: Optional[str] = None
    model_type: str
    format: str
    endpoint: TemplateEndpoint


# ================================================================
# Paging
# ================================================================

class PagingMetadata(BaseModel):
    cursor: Optional[str] = None


class PagedResult(BaseModel, Generic[T]):
    """One page of a listing; an absent cursor marks the last page"""
    result: List[T] = Field(default_factory=list)
    paging_metadata: PagingMetadata = Field(default_factory=PagingMetadata)

    @property
    def cursor(self) -> Optional[str]:
        return self.paging_metadata.cursor


# ================================================================
# Scan results
# ================================================================

class MessageLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Message(AASModel):
    level: MessageLevel
    text: str
    timestamp: int = 0


class ScanResultKind(IntEnum):
    ADD = 0
    REMOVE = 1
    UPDATE = 2
    END = 3


class ScanResult(AASModel):
    """The result of a scan; kind END closes the task"""
    type: Literal["ScanEndResult", "ScanEndpointResult", "ScanTemplatesResult"] = "ScanEndResult"
    kind: ScanResultKind
    task_id: int
    messages: List[Message] = Field(default_factory=list)


class ScanEndpointResult(ScanResult):
    type: Literal["ScanEndpointResult"] = "ScanEndpointResult"
    endpoint: Endpoint
    document: Document
    elements: List[Element] = Field(default_factory=list)


class ScanTemplatesResult(ScanResult):
    type: Literal["ScanTemplatesResult"] = "ScanTemplatesResult"
    templates: List[TemplateDescriptor] = Field(default_factory=list)
