import os
from pathlib import Path

from dotenv import load_dotenv

from environments.config import AppConfig

load_dotenv()

CONTENT_ROOT = os.getenv("CONTENT_ROOT", "")
ASSETS = os.getenv("ASSETS", "")
AAS_INDEX = os.getenv("AAS_INDEX", "")
TEMPLATE_STORAGE = os.getenv("TEMPLATE_STORAGE", "")
ENDPOINTS = os.getenv("ENDPOINTS", "")
SCAN_ENDPOINT_TIMEOUT = float(os.getenv("SCAN_ENDPOINT_TIMEOUT", "60"))


def load_config() -> AppConfig:
    """AppConfig from the process environment (and a .env file, if any)"""
    return AppConfig(
        content_root=Path(CONTENT_ROOT) if CONTENT_ROOT else None,
        assets=Path(ASSETS) if ASSETS else None,
        aas_index=AAS_INDEX,
        template_storage=Path(TEMPLATE_STORAGE) if TEMPLATE_STORAGE else None,
        endpoints=tuple(url.strip() for url in ENDPOINTS.split(";") if url.strip()),
        scan_endpoint_timeout=SCAN_ENDPOINT_TIMEOUT,
    )
