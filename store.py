"""Document store: JSON documents in SQLite, addressed by collection path and id.

Collection paths have an odd number of segments ("feedback",
"users/7/translations"); a document path adds the id. The profile of user 7
is document "7" in collection "users".
"""
import json
import time
import asyncio
import secrets
import sqlite3
from contextlib import contextmanager
from collections import defaultdict
from typing import AsyncIterator, Dict, List, Optional, Set

from log import get_logger

logger = get_logger("vaani.store")

import auth
from errors import PersistenceError

# collection -> queues of live subscribers
_listeners: Dict[str, Set[asyncio.Queue]] = defaultdict(set)


def check_collection_path(collection: str) -> str:
    segments = collection.split("/")
    if len(segments) % 2 != 1 or not all(segments):
        raise PersistenceError(f"invalid collection path: {collection!r}")
    return collection


@contextmanager
def _connection():
    try:
        conn = auth.get_db()
    except sqlite3.Error as e:
        raise PersistenceError(f"document store unavailable: {e}") from e
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        logger.error("Document store query failed", extra={"component": "store", "detail": str(e)})
        raise PersistenceError(f"document store failure: {e}") from e
    finally:
        conn.close()


def _notify(collection: str):
    for queue in list(_listeners.get(collection, ())):
        queue.put_nowait(collection)


def _to_doc(row) -> dict:
    data = json.loads(row["data_json"])
    data["id"] = row["doc_id"]
    return data


def create(collection: str, record: dict) -> str:
    """Insert a new document and return its generated id."""
    check_collection_path(collection)
    doc_id = secrets.token_hex(10)
    now = time.time()
    with _connection() as conn:
        conn.execute(
            "INSERT INTO documents (collection, doc_id, data_json, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (collection, doc_id, json.dumps(record, ensure_ascii=False), now, now),
        )
    _notify(collection)
    return doc_id


def delete(collection: str, doc_id: str) -> bool:
    check_collection_path(collection)
    with _connection() as conn:
        cursor = conn.execute("DELETE FROM documents WHERE collection = ? AND doc_id = ?", (collection, doc_id))
        deleted = cursor.rowcount > 0
    if deleted:
        _notify(collection)
    return deleted


def get(collection: str, doc_id: str) -> Optional[dict]:
    check_collection_path(collection)
    with _connection() as conn:
        row = conn.execute(
            "SELECT doc_id, data_json FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
    return _to_doc(row) if row else None


def merge(collection: str, doc_id: str, fields: dict) -> dict:
    """Merge-upsert: create the document or overwrite only the given fields."""
    check_collection_path(collection)
    now = time.time()
    with _connection() as conn:
        row = conn.execute(
            "SELECT data_json FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        data = json.loads(row["data_json"]) if row else {}
        data.update(fields)
        conn.execute(
            "INSERT INTO documents (collection, doc_id, data_json, created_at, updated_at) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(collection, doc_id) DO UPDATE SET data_json = excluded.data_json, updated_at = excluded.updated_at",
            (collection, doc_id, json.dumps(data, ensure_ascii=False), now, now),
        )
    data["id"] = doc_id
    return data


def query(collection: str, order_by: Optional[str] = None, descending: bool = False,
          limit: Optional[int] = None) -> List[dict]:
    check_collection_path(collection)
    direction = "DESC" if descending else "ASC"
    sql = "SELECT doc_id, data_json FROM documents WHERE collection = ?"
    params: list = [collection]
    if order_by:
        sql += f" ORDER BY json_extract(data_json, ?) {direction}, created_at {direction}"
        params.append(f"$.{order_by}")
    else:
        sql += f" ORDER BY created_at {direction}"
    if limit:
        sql += " LIMIT ?"
        params.append(int(limit))
    with _connection() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_to_doc(r) for r in rows]


async def subscribe(collection: str, order_by: Optional[str] = None, descending: bool = False,
                    limit: Optional[int] = None) -> AsyncIterator[List[dict]]:
    """Yield the ordered snapshot now and again after every change to the collection."""
    check_collection_path(collection)
    queue: asyncio.Queue = asyncio.Queue()
    _listeners[collection].add(queue)
    try:
        yield query(collection, order_by, descending, limit)
        while True:
            await queue.get()
            # One snapshot covers a burst of writes
            while not queue.empty():
                queue.get_nowait()
            yield query(collection, order_by, descending, limit)
    finally:
        _listeners[collection].discard(queue)
        if not _listeners[collection]:
            _listeners.pop(collection, None)
