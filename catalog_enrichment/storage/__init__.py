"""
Document Storage

Storage providers for product documents, per-store sync status records and
tenant configuration, with Redis and local JSON implementations.

Writes use $set semantics: only the supplied fields are replaced, unrelated
fields on the stored document are left alone.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote
import logging

import redis.asyncio as redis

from catalog_enrichment.errors import StoreConnectionError

logger = logging.getLogger(__name__)

ProductPredicate = Callable[[Dict[str, Any]], bool]


# =====================================================
# DOCUMENT STORE PROVIDERS
# =====================================================

class DocumentStore(ABC):
    """Product/status/config storage for any number of stores (tenants), keyed by dbName"""

    provider_name = "abstract"

    @abstractmethod
    async def connect(self) -> None:
        """Open and verify the connection; raise StoreConnectionError when unreachable"""
        pass

    async def close(self) -> None:
        """Release connections"""
        pass

    # Product Methods
    @abstractmethod
    async def find_products(self, db_name: str, predicate: Optional[ProductPredicate] = None,
                            limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Products matching `predicate` (all when None), in insertion order"""
        pass

    @abstractmethod
    async def get_product(self, db_name: str, product_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def upsert_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any],
                             set_on_insert: Optional[Dict[str, Any]] = None) -> bool:
        """Merge `set_fields` into the product, creating it (with `set_on_insert`) if missing.

        Returns True when the product was created.
        """
        pass

    @abstractmethod
    async def update_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any]) -> bool:
        """Merge `set_fields` into an existing product; False when it does not exist"""
        pass

    @abstractmethod
    async def bulk_update_products(self, db_name: str, updates: Dict[str, Dict[str, Any]]) -> int:
        """Apply {product_id: set_fields} to existing products; returns the number modified"""
        pass

    # Sync Status Methods
    @abstractmethod
    async def get_sync_status(self, db_name: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def set_sync_status(self, db_name: str, fields: Dict[str, Any]) -> None:
        """Merge `fields` into the status record, creating it if needed"""
        pass

    @abstractmethod
    async def push_logs(self, db_name: str, lines: List[str], max_logs: Optional[int] = None) -> None:
        """Append log lines, keeping only the newest `max_logs`"""
        pass

    # Store Configuration Methods
    @abstractmethod
    async def get_store_config(self, db_name: str) -> Optional[Dict[str, Any]]:
        """Tenant document: syncMode, categories, types, softCategories, credentials"""
        pass

    @abstractmethod
    async def save_store_config(self, db_name: str, config: Dict[str, Any]) -> None:
        pass


class LocalDocumentStore(DocumentStore):
    """
    JSON-file document store for development and tests.

    Layout mirrors the Redis keys: one file per product under
    `{db}/products/`, an id index `{db}/product_ids.json` kept in insertion
    order, plus `sync_status.json` and `config.json`. An update rewrites only
    the touched product files; the index is rewritten on insert. File I/O is
    synchronous, so large production catalogs belong in Redis.
    """

    provider_name = "local"

    def __init__(self, base_dir: str = "local/catalog_store"):
        self.base_dir = base_dir
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, db_name: str) -> asyncio.Lock:
        if db_name not in self._locks:
            self._locks[db_name] = asyncio.Lock()
        return self._locks[db_name]

    def _path(self, db_name: str, name: str) -> str:
        return os.path.join(self.base_dir, db_name, f"{name}.json")

    def _product_path(self, db_name: str, product_id: str) -> str:
        return os.path.join(self.base_dir, db_name, "products", f"{quote(str(product_id), safe='')}.json")

    @staticmethod
    def _load(filepath: str, default: Any) -> Any:
        if not os.path.exists(filepath):
            return default
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _dump(filepath: str, data: Any) -> None:
        os.makedirs(os.path.dirname(filepath), exist_ok=True)
        tmp_path = filepath + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, filepath)

    def _read(self, db_name: str, name: str, default: Any) -> Any:
        return self._load(self._path(db_name, name), default)

    def _write(self, db_name: str, name: str, data: Any) -> None:
        self._dump(self._path(db_name, name), data)

    def _read_product(self, db_name: str, product_id: str) -> Optional[Dict[str, Any]]:
        return self._load(self._product_path(db_name, product_id), None)

    def _write_product(self, db_name: str, doc: Dict[str, Any]) -> None:
        self._dump(self._product_path(db_name, doc["id"]), doc)

    async def connect(self) -> None:
        try:
            os.makedirs(self.base_dir, exist_ok=True)
        except OSError as e:
            raise StoreConnectionError(f"Local store directory unusable: {self.base_dir}: {e}",
                                       provider=self.provider_name, original_error=e)
        logger.info(f"Using local document store: {self.base_dir}")

    async def find_products(self, db_name: str, predicate: Optional[ProductPredicate] = None,
                            limit: Optional[int] = None) -> List[Dict[str, Any]]:
        matched = []
        for product_id in self._read(db_name, "product_ids", []):
            doc = self._read_product(db_name, product_id)
            if doc is None:
                continue
            if predicate is None or predicate(doc):
                matched.append(doc)
                if limit is not None and len(matched) >= limit:
                    break
        return matched

    async def get_product(self, db_name: str, product_id: str) -> Optional[Dict[str, Any]]:
        return self._read_product(db_name, str(product_id))

    async def upsert_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any],
                             set_on_insert: Optional[Dict[str, Any]] = None) -> bool:
        async with self._lock(db_name):
            key = str(product_id)
            doc = self._read_product(db_name, key)
            created = doc is None
            if created:
                doc = {"id": key, **(set_on_insert or {})}
            doc.update(set_fields)
            self._write_product(db_name, doc)
            if created:
                ids = self._read(db_name, "product_ids", [])
                ids.append(key)
                self._write(db_name, "product_ids", ids)
            return created

    async def update_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any]) -> bool:
        return await self.bulk_update_products(db_name, {str(product_id): set_fields}) == 1

    async def bulk_update_products(self, db_name: str, updates: Dict[str, Dict[str, Any]]) -> int:
        if not updates:
            return 0
        async with self._lock(db_name):
            modified = 0
            for product_id, fields in updates.items():
                doc = self._read_product(db_name, str(product_id))
                if doc is None:
                    continue
                doc.update(fields)
                self._write_product(db_name, doc)
                modified += 1
            return modified

    async def get_sync_status(self, db_name: str) -> Optional[Dict[str, Any]]:
        return self._read(db_name, "sync_status", None)

    async def set_sync_status(self, db_name: str, fields: Dict[str, Any]) -> None:
        async with self._lock(db_name):
            status = self._read(db_name, "sync_status", None) or {"dbName": db_name, "logs": []}
            status.update(fields)
            self._write(db_name, "sync_status", status)

    async def push_logs(self, db_name: str, lines: List[str], max_logs: Optional[int] = None) -> None:
        async with self._lock(db_name):
            status = self._read(db_name, "sync_status", None) or {"dbName": db_name, "logs": []}
            logs = list(status.get("logs") or []) + list(lines)
            if max_logs is not None and len(logs) > max_logs:
                logs = logs[-max_logs:]
            status["logs"] = logs
            self._write(db_name, "sync_status", status)

    async def get_store_config(self, db_name: str) -> Optional[Dict[str, Any]]:
        return self._read(db_name, "config", None)

    async def save_store_config(self, db_name: str, config: Dict[str, Any]) -> None:
        async with self._lock(db_name):
            self._write(db_name, "config", config)


class RedisDocumentStore(DocumentStore):
    """
    Redis-backed document store.

    Keys:
        product:{db}:{id}   JSON product document
        products:{db}       list of product ids (insertion order)
        sync_status:{db}    hash of JSON-encoded status fields (without logs)
        sync_logs:{db}      list of log lines
        store_config:{db}   JSON tenant document
    """

    provider_name = "redis"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis_client: Optional[redis.Redis] = None
        self._connection_lock = asyncio.Lock()

    async def _get_redis_client(self) -> redis.Redis:
        if self._redis_client is None:
            async with self._connection_lock:
                if self._redis_client is None:
                    client = redis.from_url(
                        self.redis_url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_connect_timeout=5,
                        socket_timeout=5,
                    )
                    await client.ping()
                    self._redis_client = client
                    logger.info("Connected to Redis document store")
        return self._redis_client

    async def connect(self) -> None:
        try:
            await self._get_redis_client()
        except (redis.RedisError, OSError) as e:
            raise StoreConnectionError(f"Redis unreachable: {e}", provider=self.provider_name, original_error=e)

    async def close(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None

    @staticmethod
    def _product_key(db_name: str, product_id: str) -> str:
        return f"product:{db_name}:{product_id}"

    async def find_products(self, db_name: str, predicate: Optional[ProductPredicate] = None,
                            limit: Optional[int] = None) -> List[Dict[str, Any]]:
        client = await self._get_redis_client()
        product_ids = await client.lrange(f"products:{db_name}", 0, -1)
        matched: List[Dict[str, Any]] = []
        batch_size = 200
        for start in range(0, len(product_ids), batch_size):
            keys = [self._product_key(db_name, pid) for pid in product_ids[start:start + batch_size]]
            for raw in await client.mget(keys):
                if raw is None:
                    continue
                doc = json.loads(raw)
                if predicate is None or predicate(doc):
                    matched.append(doc)
                    if limit is not None and len(matched) >= limit:
                        return matched
        return matched

    async def get_product(self, db_name: str, product_id: str) -> Optional[Dict[str, Any]]:
        client = await self._get_redis_client()
        raw = await client.get(self._product_key(db_name, product_id))
        return json.loads(raw) if raw else None

    async def upsert_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any],
                             set_on_insert: Optional[Dict[str, Any]] = None) -> bool:
        client = await self._get_redis_client()
        key = str(product_id)
        existing = await self.get_product(db_name, key)
        created = existing is None
        doc = existing if existing is not None else {"id": key, **(set_on_insert or {})}
        doc.update(set_fields)

        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._product_key(db_name, key), json.dumps(doc, ensure_ascii=False))
            if created:
                pipe.rpush(f"products:{db_name}", key)
            await pipe.execute()
        return created

    async def update_product(self, db_name: str, product_id: str, set_fields: Dict[str, Any]) -> bool:
        return await self.bulk_update_products(db_name, {str(product_id): set_fields}) == 1

    async def bulk_update_products(self, db_name: str, updates: Dict[str, Dict[str, Any]]) -> int:
        if not updates:
            return 0
        client = await self._get_redis_client()
        ids = [str(pid) for pid in updates]
        raws = await client.mget([self._product_key(db_name, pid) for pid in ids])

        modified = 0
        async with client.pipeline(transaction=True) as pipe:
            for pid, raw in zip(ids, raws):
                if raw is None:
                    continue
                doc = json.loads(raw)
                doc.update(updates[pid])
                pipe.set(self._product_key(db_name, pid), json.dumps(doc, ensure_ascii=False))
                modified += 1
            if modified:
                await pipe.execute()
        return modified

    async def get_sync_status(self, db_name: str) -> Optional[Dict[str, Any]]:
        client = await self._get_redis_client()
        raw = await client.hgetall(f"sync_status:{db_name}")
        if not raw:
            return None
        status = {field: json.loads(value) for field, value in raw.items()}
        status["logs"] = await client.lrange(f"sync_logs:{db_name}", 0, -1)
        return status

    async def set_sync_status(self, db_name: str, fields: Dict[str, Any]) -> None:
        client = await self._get_redis_client()
        fields = {"dbName": db_name, **fields}
        logs = fields.pop("logs", None)
        # One hash field per status field: concurrent writers never overwrite each other's fields
        mapping = {field: json.dumps(value, ensure_ascii=False) for field, value in fields.items()}

        async with client.pipeline(transaction=True) as pipe:
            pipe.hset(f"sync_status:{db_name}", mapping=mapping)
            if logs is not None:
                pipe.delete(f"sync_logs:{db_name}")
                if logs:
                    pipe.rpush(f"sync_logs:{db_name}", *logs)
            await pipe.execute()

    async def push_logs(self, db_name: str, lines: List[str], max_logs: Optional[int] = None) -> None:
        if not lines:
            return
        client = await self._get_redis_client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.rpush(f"sync_logs:{db_name}", *lines)
            if max_logs is not None:
                pipe.ltrim(f"sync_logs:{db_name}", -max_logs, -1)
            await pipe.execute()

    async def get_store_config(self, db_name: str) -> Optional[Dict[str, Any]]:
        client = await self._get_redis_client()
        raw = await client.get(f"store_config:{db_name}")
        return json.loads(raw) if raw else None

    async def save_store_config(self, db_name: str, config: Dict[str, Any]) -> None:
        client = await self._get_redis_client()
        await client.set(f"store_config:{db_name}", json.dumps(config, ensure_ascii=False))


def get_document_store(settings=None) -> DocumentStore:
    """
    Get the document store configured by settings.

    Settings:
        STORAGE_PROVIDER: "redis" or "local" (default: "local")
        REDIS_URL / REDIS_HOST / REDIS_PORT / REDIS_PASSWORD: Redis connection
        LOCAL_STORAGE_DIR: local store directory (default: "local/catalog_store")
    """
    if settings is None:
        from configs import get_settings
        settings = get_settings()

    if settings.STORAGE_PROVIDER == "redis":
        logger.info(f"Using Redis document store: {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return RedisDocumentStore(settings.redis_url)

    logger.info(f"Using local document store: {settings.LOCAL_STORAGE_DIR}")
    return LocalDocumentStore(base_dir=settings.LOCAL_STORAGE_DIR)


__all__ = [
    "DocumentStore",
    "LocalDocumentStore",
    "RedisDocumentStore",
    "get_document_store",
    "ProductPredicate",
]
