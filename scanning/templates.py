import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, List, Optional

from core.models import (
    Message,
    MessageLevel,
    ScanResult,
    ScanResultKind,
    ScanTemplatesResult,
    TemplateDescriptor,
    TemplateEndpoint,
)
from core.utils import now_ms
from indexing.converter import model_type_of

logger = logging.getLogger(__name__)


class TemplateScan:
    """서브모델 템플릿 수집"""

    def __init__(self, task_id: int, root: Path):
        self.task_id = task_id
        self.root = Path(root)
        self.messages: List[Message] = []

    async def scan(self) -> AsyncIterator[ScanResult]:
        templates: List[TemplateDescriptor] = []
        if self.root.is_dir():
            files = await asyncio.to_thread(lambda: sorted(self.root.rglob("*.json")))
            for file in files:
                descriptor = await self._from_json_file(file)
                if descriptor is not None:
                    templates.append(descriptor)
        else:
            logger.info(f"Template storage {self.root} does not exist")

        yield ScanTemplatesResult(kind=ScanResultKind.UPDATE, task_id=self.task_id, templates=templates)

        self.messages.append(Message(
            level=MessageLevel.INFO,
            text=f"{len(templates)} templates found in {self.root}",
            timestamp=now_ms(),
        ))
        yield ScanResult(kind=ScanResultKind.END, task_id=self.task_id, messages=list(self.messages))

    async def _from_json_file(self, file: Path) -> Optional[TemplateDescriptor]:
        try:
            data = json.loads(await asyncio.to_thread(file.read_text, encoding="utf-8"))
            if model_type_of(data) != "Submodel":
                data = data["submodels"][0]

            return TemplateDescriptor(
                id_short=data["idShort"],
                id=data.get("id"),
                model_type=model_type_of(data),
                format=".json",
                endpoint=TemplateEndpoint(address=file.relative_to(self.root).as_posix()),
            )
        except (OSError, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            text = f"Template {file.name} skipped: {e}"
            logger.warning(text)
            self.messages.append(Message(level=MessageLevel.WARNING, text=text, timestamp=now_ms()))
            return None
