import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class KeywordDirectory:
    """키워드 사전 (사용 전 await directory.wait())"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._directory: List[Tuple[str, str]] = []
        self._ready = False
        self._loading: Optional[asyncio.Task] = None

    async def wait(self) -> None:
        if self._ready:
            return
        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        await asyncio.shield(self._loading)
        self._ready = True

    @classmethod
    def from_keywords(cls, keywords: Sequence) -> "KeywordDirectory":
        directory = cls()
        directory._directory = cls._normalize(keywords)
        directory._ready = True
        return directory

    async def _load(self) -> None:
        if self.path is None or not self.path.exists():
            logger.warning(f"Keyword directory not found: {self.path}")
            return

        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            if self.path.suffix.lower() == ".json":
                items = json.loads(text)
            else:
                items = [line for line in text.splitlines() if line.strip()]

            self._directory = self._normalize(items)
            logger.info(f"Keyword directory loaded from {self.path} ({len(self._directory)} keywords)")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load keyword directory {self.path}: {e}")

    @staticmethod
    def _normalize(items: Sequence) -> List[Tuple[str, str]]:
        directory = []
        for item in items:
            if isinstance(item, str):
                keyword, language = item, ""
            else:
                keyword = item[0]
                language = item[1] if len(item) > 1 and item[1] else ""

            keyword = keyword.strip().lower()
            if keyword:
                directory.append((keyword, language.lower()))

        return directory

    def __len__(self) -> int:
        return len(self._directory)

    def contained_keyword(self, text: str, language: Optional[str] = None) -> List[str]:
        """Keywords found in ``text``, in order of first occurrence, without duplicates"""
        text = text.lower()
        language = language.lower() if language else None

        found = {}
        for keyword, lang in self._directory:
            if lang and language and lang != language:
                continue
            if keyword in found:
                continue

            position = text.find(keyword)
            if position >= 0:
                found[keyword] = position

        return sorted(found, key=found.__getitem__)

    @staticmethod
    def to_string(keywords: Sequence[str], separator: str, max_length: int = 0) -> str:
        """Join keywords; never longer than ``max_length`` and never cutting a keyword"""
        result = ""
        for keyword in keywords:
            candidate = f"{result}{separator}{keyword}" if result else keyword
            if max_length > 0 and len(candidate) > max_length:
                break

            result = candidate

        return result
