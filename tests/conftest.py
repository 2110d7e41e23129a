import json
from pathlib import Path

import pytest
import pytest_asyncio

from environments.config import AppConfig
from fetching.factory import AdapterFactory
from indexing.converter import DocumentConverter
from indexing.json_index import JsonFileIndex
from indexing.keywords import KeywordDirectory
from scanning.context import AppContext
from scanning.coordinator import ScanCoordinator

KEYWORDS = ["aas", "submodel", "temperature", "pressure", "pump", "valve"]


def build_environment(aas_id: str, id_short: str, temperature: str = "42.5") -> dict:
    submodel_id = f"{aas_id}/submodels/technical-data"
    return {
        "assetAdministrationShells": [
            {
                "id": aas_id,
                "idShort": id_short,
                "modelType": "AssetAdministrationShell",
                "assetInformation": {"assetKind": "Instance", "globalAssetId": f"{aas_id}/asset"},
                "submodels": [
                    {"type": "ModelReference", "keys": [{"type": "Submodel", "value": submodel_id}]}
                ],
            }
        ],
        "submodels": [
            {
                "id": submodel_id,
                "idShort": "TechnicalData",
                "modelType": "Submodel",
                "submodelElements": [
                    {
                        "idShort": "MaxTemperature",
                        "modelType": "Property",
                        "valueType": "xs:double",
                        "value": temperature,
                    },
                    {
                        "idShort": "ManufacturerName",
                        "modelType": "MultiLanguageProperty",
                        "value": [{"language": "en", "text": "ACME Pumps"}],
                    },
                ],
            }
        ],
    }


@pytest.fixture
def make_environment():
    return build_environment


@pytest.fixture
def keywords() -> KeywordDirectory:
    return KeywordDirectory.from_keywords(KEYWORDS)


@pytest.fixture
def converter(keywords) -> DocumentConverter:
    return DocumentConverter(keywords)


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(content_root=tmp_path / "content", page_size=2, scan_endpoint_timeout=3600.0)


@pytest.fixture
def aas_directory(tmp_path) -> Path:
    """Five AAS environment files"""
    root = tmp_path / "aas"
    root.mkdir()
    for i in range(1, 6):
        environment = build_environment(f"https://example.com/ids/aas/{i}", f"Pump{i}")
        (root / f"pump{i}.json").write_text(json.dumps(environment), encoding="utf-8")
    return root


@pytest_asyncio.fixture
async def coordinator(config, keywords, tmp_path):
    index = JsonFileIndex(tmp_path / "db.json")
    await index.open()
    context = AppContext(
        config=config,
        keywords=keywords,
        index=index,
        adapters=AdapterFactory(config, keywords),
    )
    coordinator = ScanCoordinator(context)
    await coordinator.start(scan=False)
    yield coordinator
    await coordinator.shutdown()
    await context.close()
