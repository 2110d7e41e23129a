import base64
import json
import time
import uuid
import zlib


class ContentHasher:
    """컨텐츠 해시 유틸리티"""

    @staticmethod
    def hash_content(content: dict) -> int:
        """CRC-32 of the canonical JSON form"""
        text = json.dumps(content, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return zlib.crc32(text.encode("utf-8")) & 0xFFFFFFFF


def encode_base64url(value: str) -> str:
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def decode_base64url(value: str) -> str:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding).decode("utf-8")


def now_ms() -> int:
    return int(time.time() * 1000)


def document_uuid(endpoint: str, aas_id: str) -> str:
    """Stable uuid of an AAS within an endpoint"""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{endpoint}/{aas_id}"))
