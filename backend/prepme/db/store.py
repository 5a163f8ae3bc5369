from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Protocol

from core import config

logger = logging.getLogger("prepme.db.store")

# (field, op, value) where op is "==" or "!="
Filter = tuple[str, str, Any]
OrderBy = tuple[str, str]

_SUPPORTED_OPS = {"==", "!="}


class DocumentStore(Protocol):
    def new_id(self) -> str:
        ...

    def get(self, collection: str, doc_id: str) -> dict | None:
        ...

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def query(
        self,
        collection: str,
        where: Iterable[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        ...


def _check_filters(where: Iterable[Filter]) -> list[Filter]:
    filters = list(where or ())
    for field, op, _ in filters:
        if op not in _SUPPORTED_OPS:
            raise ValueError(f"Unsupported filter op {op!r} on {field!r}")
    return filters


def _matches(doc: dict, filters: list[Filter]) -> bool:
    for field, op, value in filters:
        current = doc.get(field)
        if op == "==" and current != value:
            return False
        if op == "!=" and (field not in doc or current == value):
            return False
    return True


class MemoryDocumentStore:
    """
    In-process store. Optionally mirrored to a JSON file so a dev server
    keeps its data across restarts.
    """

    def __init__(self, path: str | Path | None = None):
        self._lock = Lock()
        self._path = Path(path) if path else None
        self._collections: dict[str, dict[str, dict]] = {}
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("document store load failed | path=%s err=%s", self._path, exc)
            return
        if isinstance(payload, dict):
            self._collections = {
                str(name): {str(k): dict(v) for k, v in docs.items() if isinstance(v, dict)}
                for name, docs in payload.items()
                if isinstance(docs, dict)
            }

    def _persist(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(self._collections, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self._path)

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def get(self, collection: str, doc_id: str) -> dict | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(str(doc_id))
            return {"id": str(doc_id), **doc} if doc is not None else None

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        record = {k: v for k, v in dict(data or {}).items() if k != "id"}
        with self._lock:
            self._collections.setdefault(collection, {})[str(doc_id)] = record
            self._persist()

    def query(
        self,
        collection: str,
        where: Iterable[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        filters = _check_filters(where)
        with self._lock:
            rows = [
                {"id": doc_id, **doc}
                for doc_id, doc in self._collections.get(collection, {}).items()
                if _matches(doc, filters)
            ]
        if order_by is not None:
            field, direction = order_by
            rows = [row for row in rows if row.get(field) is not None]
            rows.sort(key=lambda row: row[field], reverse=str(direction).lower() == "desc")
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return rows

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))


class MongoDocumentStore:
    def __init__(self, uri: str, db_name: str, database=None):
        if database is None:
            from pymongo import MongoClient

            database = MongoClient(uri)[db_name]
            logger.info("connected to MongoDB | db=%s", db_name)
        self._db = database

    @staticmethod
    def _to_doc(raw: dict | None) -> dict | None:
        if raw is None:
            return None
        doc = dict(raw)
        doc["id"] = str(doc.pop("_id"))
        return doc

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def get(self, collection: str, doc_id: str) -> dict | None:
        return self._to_doc(self._db[collection].find_one({"_id": str(doc_id)}))

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        record = {k: v for k, v in dict(data or {}).items() if k not in {"id", "_id"}}
        self._db[collection].replace_one({"_id": str(doc_id)}, record, upsert=True)

    def query(
        self,
        collection: str,
        where: Iterable[Filter] = (),
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        clauses: list[dict[str, Any]] = []
        for field, op, value in _check_filters(where):
            clauses.append({field: value if op == "==" else {"$ne": value, "$exists": True}})
        if order_by is not None:
            # documents without the sort field are dropped, as in the memory store
            clauses.append({order_by[0]: {"$ne": None}})

        if not clauses:
            mongo_filter: dict[str, Any] = {}
        elif len(clauses) == 1:
            mongo_filter = clauses[0]
        else:
            mongo_filter = {"$and": clauses}

        cursor = self._db[collection].find(mongo_filter)
        if order_by is not None:
            field, direction = order_by
            cursor = cursor.sort(field, -1 if str(direction).lower() == "desc" else 1)
        if limit is not None:
            cursor = cursor.limit(max(0, int(limit)))
        return [self._to_doc(raw) for raw in cursor]


def build_document_store() -> DocumentStore:
    if config.DOCUMENT_STORE == "mongo":
        return MongoDocumentStore(uri=config.MONGO_URI, db_name=config.MONGO_DB)
    if config.DOCUMENT_STORE != "memory":
        raise RuntimeError(f"Unknown DOCUMENT_STORE={config.DOCUMENT_STORE!r}; expected 'memory' or 'mongo'")
    return MemoryDocumentStore(path=config.DOCUMENT_STORE_PATH or None)


_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = build_document_store()
    return _store


def set_document_store(store: DocumentStore | None) -> None:
    global _store
    _store = store
