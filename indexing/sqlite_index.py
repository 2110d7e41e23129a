import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import aiosqlite

from core.exceptions import IndexStoreError
from core.models import Document, Element, Endpoint, EndpointSchedule, ValueType
from indexing.store import AASIndex

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS endpoints (
        name TEXT PRIMARY KEY,
        url TEXT NOT NULL,
        type TEXT NOT NULL,
        version TEXT,
        headers TEXT,
        schedule TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        uuid TEXT PRIMARY KEY,
        endpoint TEXT NOT NULL,
        id TEXT NOT NULL,
        address TEXT NOT NULL,
        crc32 INTEGER NOT NULL,
        idShort TEXT NOT NULL,
        assetId TEXT,
        thumbnail TEXT,
        timestamp INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS elements (
        uuid TEXT NOT NULL,
        modelType TEXT NOT NULL,
        id TEXT,
        idShort TEXT NOT NULL,
        stringValue TEXT,
        numberValue REAL,
        dateValue TEXT,
        booleanValue INTEGER
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_endpoint ON documents(endpoint)",
    "CREATE INDEX IF NOT EXISTS idx_elements_uuid ON elements(uuid, idShort)",
)


class SqliteIndex(AASIndex):
    """Relational index; every multi-row write is one transaction"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        if self.db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")

        for statement in SCHEMA:
            await self._db.execute(statement)
        await self._db.commit()
        logger.info(f"SQLite index opened: {self.db_path}")

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @asynccontextmanager
    async def _transaction(self):
        if self._db is None:
            raise IndexStoreError("The SQLite index is not open.")

        async with self._lock:
            try:
                yield self._db
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise

    async def _fetchall(self, sql: str, parameters: tuple = ()) -> list:
        if self._db is None:
            raise IndexStoreError("The SQLite index is not open.")

        async with self._lock:
            async with self._db.execute(sql, parameters) as cursor:
                return list(await cursor.fetchall())

    # ================================================================
    # Endpoints
    # ================================================================

    async def put_endpoint(self, endpoint: Endpoint) -> Optional[Endpoint]:
        async with self._transaction() as db:
            async with db.execute("SELECT * FROM endpoints WHERE name = ?", (endpoint.name,)) as cursor:
                row = await cursor.fetchone()

            await db.execute(
                "INSERT OR REPLACE INTO endpoints (name, url, type, version, headers, schedule) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    endpoint.name,
                    endpoint.url,
                    endpoint.type.value,
                    endpoint.version,
                    json.dumps(endpoint.headers) if endpoint.headers else None,
                    json.dumps(endpoint.schedule.to_wire()) if endpoint.schedule else None,
                ),
            )

        return self._to_endpoint(row) if row else None

    async def find_endpoint(self, name: str) -> Optional[Endpoint]:
        rows = await self._fetchall("SELECT * FROM endpoints WHERE name = ?", (name,))
        return self._to_endpoint(rows[0]) if rows else None

    async def remove_endpoint(self, name: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute("DELETE FROM endpoints WHERE name = ?", (name,))
            removed = cursor.rowcount > 0
            await db.execute(
                "DELETE FROM elements WHERE uuid IN (SELECT uuid FROM documents WHERE endpoint = ?)",
                (name,),
            )
            await db.execute("DELETE FROM documents WHERE endpoint = ?", (name,))

        return removed

    async def list_endpoints(self) -> List[Endpoint]:
        rows = await self._fetchall("SELECT * FROM endpoints ORDER BY name")
        return [self._to_endpoint(row) for row in rows]

    # ================================================================
    # Documents
    # ================================================================

    async def put_document(
        self,
        document: Document,
        elements: Optional[Sequence[Element]] = None,
    ) -> None:
        async with self._transaction() as db:
            await db.execute(
                "INSERT OR REPLACE INTO documents "
                "(uuid, endpoint, id, address, crc32, idShort, assetId, thumbnail, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    document.uuid,
                    document.endpoint,
                    document.id,
                    document.address,
                    document.content_hash,
                    document.id_short,
                    document.asset_id,
                    document.thumbnail,
                    document.timestamp,
                ),
            )

            if elements is not None:
                await self._write_elements(db, document.uuid, elements)

    async def remove_document(self, uuid: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute("DELETE FROM documents WHERE uuid = ?", (uuid,))
            await db.execute("DELETE FROM elements WHERE uuid = ?", (uuid,))
            return cursor.rowcount > 0

    async def get_document(self, uuid: str) -> Optional[Document]:
        rows = await self._fetchall("SELECT * FROM documents WHERE uuid = ?", (uuid,))
        return self._to_document(rows[0]) if rows else None

    async def count_documents(self, endpoint_name: Optional[str] = None) -> int:
        if endpoint_name is None:
            rows = await self._fetchall("SELECT COUNT(*) FROM documents")
        else:
            rows = await self._fetchall("SELECT COUNT(*) FROM documents WHERE endpoint = ?", (endpoint_name,))
        return rows[0][0]

    async def list_documents(self, endpoint_name: str) -> List[Document]:
        rows = await self._fetchall(
            "SELECT * FROM documents WHERE endpoint = ? ORDER BY id", (endpoint_name,)
        )
        return [self._to_document(row) for row in rows]

    # ================================================================
    # Elements
    # ================================================================

    async def replace_elements(self, uuid: str, elements: Sequence[Element]) -> None:
        async with self._transaction() as db:
            await self._write_elements(db, uuid, elements)

    async def get_elements(self, uuid: str) -> List[Element]:
        rows = await self._fetchall("SELECT * FROM elements WHERE uuid = ? ORDER BY rowid", (uuid,))
        return [self._to_element(row) for row in rows]

    @staticmethod
    async def _write_elements(db: aiosqlite.Connection, uuid: str, elements: Sequence[Element]) -> None:
        await db.execute("DELETE FROM elements WHERE uuid = ?", (uuid,))
        await db.executemany(
            "INSERT INTO elements "
            "(uuid, modelType, id, idShort, stringValue, numberValue, dateValue, booleanValue) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    uuid,
                    element.model_type,
                    element.id,
                    element.id_short,
                    element.value if element.value_type == ValueType.STRING else None,
                    element.value if element.value_type == ValueType.NUMBER else None,
                    element.value.isoformat() if element.value_type == ValueType.DATE else None,
                    int(element.value) if element.value_type == ValueType.BOOLEAN else None,
                )
                for element in elements
            ],
        )

    # ================================================================
    # Lifecycle
    # ================================================================

    async def clear(self) -> None:
        async with self._transaction() as db:
            await db.execute("DELETE FROM elements")
            await db.execute("DELETE FROM documents")
            await db.execute("DELETE FROM endpoints")

    # ================================================================
    # Row mapping
    # ================================================================

    @staticmethod
    def _to_endpoint(row) -> Endpoint:
        return Endpoint(
            name=row["name"],
            url=row["url"],
            type=row["type"],
            version=row["version"] or "v3",
            headers=json.loads(row["headers"]) if row["headers"] else None,
            schedule=EndpointSchedule.model_validate(json.loads(row["schedule"])) if row["schedule"] else None,
        )

    @staticmethod
    def _to_document(row) -> Document:
        return Document(
            uuid=row["uuid"],
            endpoint=row["endpoint"],
            id=row["id"],
            address=row["address"],
            content_hash=row["crc32"],
            id_short=row["idShort"],
            asset_id=row["assetId"],
            thumbnail=row["thumbnail"],
            timestamp=row["timestamp"],
        )

    @staticmethod
    def _to_element(row) -> Element:
        value_type, value = None, None
        if row["stringValue"] is not None:
            value_type, value = ValueType.STRING, row["stringValue"]
        elif row["numberValue"] is not None:
            value_type, value = ValueType.NUMBER, row["numberValue"]
        elif row["dateValue"] is not None:
            value_type, value = ValueType.DATE, datetime.fromisoformat(row["dateValue"])
        elif row["booleanValue"] is not None:
            value_type, value = ValueType.BOOLEAN, bool(row["booleanValue"])

        return Element(
            uuid=row["uuid"],
            model_type=row["modelType"],
            id=row["id"],
            id_short=row["idShort"],
            value_type=value_type,
            value=value,
        )
