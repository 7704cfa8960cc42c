"""
Document gateway over MongoDB.

Thin wrapper exposing CRUD, filtered/paginated queries and live subscriptions.
Documents are addressed by string ids; Mongo's ``_id`` is surfaced as ``id``.
"""
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import Settings
from .errors import ConflictError, NotFoundError
from .events import Subscription

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


# Replaced by the write's server time.
SERVER_TIMESTAMP = _ServerTimestamp()

Filter = Tuple[str, str, Any]
Sort = Union[Tuple[str, str], Sequence[Tuple[str, str]]]

DEFAULT_SORT = ("createdAt", "desc")

_RANGE_OPS = {
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
    "in": "$in",
    "not-in": "$nin",
    "array-contains-any": "$in",
}


def get_database(settings: Settings) -> Database:
    client = MongoClient(settings.database_url, tz_aware=True)
    return client[settings.database_name]


def new_id() -> str:
    return str(ObjectId())


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _field(name: str) -> str:
    return "_id" if name == "id" else name


def to_storage(value: Any) -> Any:
    """Datetimes are stored as naive UTC with millisecond precision, like BSON dates."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=(value.microsecond // 1000) * 1000)
    if isinstance(value, dict):
        return {k: to_storage(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage(v) for v in value]
    return value


def build_query(filters: Optional[Iterable[Filter]]) -> Dict[str, Any]:
    """Translate (field, op, value) triples into a Mongo filter.

    A tuple of field names matches when any of them satisfies the condition.
    """
    clauses = []
    for name, op, value in filters or []:
        if isinstance(name, tuple):
            clauses.append({"$or": [build_query([(n, op, value)]) for n in name]})
            continue
        value = to_storage(value)
        if op == "matches":
            clauses.append({_field(name): {"$regex": re.escape(value), "$options": "i"}})
            continue
        if op in ("==", "array-contains"):
            clauses.append({_field(name): value})
        elif op in _RANGE_OPS:
            clauses.append({_field(name): {_RANGE_OPS[op]: value}})
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _normalize_sort(sort: Optional[Sort]) -> List[Tuple[str, int]]:
    if not sort:
        sort = [DEFAULT_SORT]
    elif isinstance(sort[0], str):
        sort = [sort]
    spec = [(_field(name), DESCENDING if direction == "desc" else ASCENDING) for name, direction in sort]
    if spec[-1][0] != "_id":
        spec.append(("_id", spec[0][1]))
    return spec


def _stamp(data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    out = {}
    for k, v in data.items():
        if v is SERVER_TIMESTAMP:
            out[k] = to_storage(now)
        elif isinstance(v, dict):
            out[k] = _stamp(v, now)
        else:
            out[k] = to_storage(v)
    return out


@dataclass
class QueryPage:
    items: List[Dict[str, Any]]
    has_more: bool
    cursor: Optional[Dict[str, Any]] = None


# ---------------------------
# Subscriptions
# ---------------------------
@dataclass
class _Listener:
    collection: str
    fetch: Callable[[], Any]
    callback: Callable[[Any], None]
    empty: Any = None
    last: Any = field(default=None)
    delivered: bool = False


class SubscriptionHub:
    """Registry of live listeners, re-evaluated after every write to their collection."""

    def __init__(self):
        self._lock = threading.RLock()
        self._listeners: Dict[int, _Listener] = {}
        self._next_key = 0

    @property
    def active_subscriptions(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add(self, collection: str, fetch: Callable[[], Any], callback: Callable[[Any], None],
            empty: Any = None) -> Subscription:
        with self._lock:
            self._next_key += 1
            key = self._next_key
            listener = _Listener(collection, fetch, callback, empty)
            self._listeners[key] = listener
        subscription = Subscription(self, key)
        self._deliver(key, listener)
        return subscription

    def remove(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def publish(self, collection: str) -> None:
        with self._lock:
            targets = [(k, l) for k, l in self._listeners.items() if l.collection == collection]
        for key, listener in targets:
            self._deliver(key, listener)

    def _deliver(self, key: int, listener: _Listener) -> None:
        try:
            snapshot = listener.fetch()
        except PyMongoError as e:
            logger.error(f"Snapshot failed for {listener.collection}: {e}")
            snapshot = listener.empty
        with self._lock:
            if key not in self._listeners:
                return
            if listener.delivered and snapshot == listener.last:
                return
            listener.last = snapshot
            listener.delivered = True
        try:
            listener.callback(snapshot)
        except Exception:
            logger.exception(f"Listener on {listener.collection} raised")


class ChangeStreamWatcher(threading.Thread):
    """Fans out writes made by other processes (requires a replica set)."""

    def __init__(self, db: Database, hub: SubscriptionHub):
        super().__init__(name="modelo-change-stream", daemon=True)
        self.db = db
        self.hub = hub
        self._stopped = threading.Event()

    def run(self):
        try:
            with self.db.watch() as stream:
                while not self._stopped.is_set():
                    change = stream.try_next()
                    if change is None:
                        self._stopped.wait(0.5)
                        continue
                    collection = change.get("ns", {}).get("coll")
                    if collection:
                        self.hub.publish(collection)
        except PyMongoError as e:
            logger.warning(f"Change stream unavailable: {e}")

    def stop(self):
        self._stopped.set()


# ---------------------------
# Gateway
# ---------------------------
class DocumentGateway:
    def __init__(self, db: Database, hub: Optional[SubscriptionHub] = None):
        self.db = db
        self.hub = hub or SubscriptionHub()
        self._clock_lock = threading.Lock()
        self._last_stamp: Optional[datetime] = None

    def now(self) -> datetime:
        """Server clock; never goes backwards within one gateway."""
        with self._clock_lock:
            current = datetime.now(timezone.utc)
            stamp = current.replace(microsecond=(current.microsecond // 1000) * 1000)
            if self._last_stamp is not None and stamp < self._last_stamp:
                stamp = self._last_stamp
            self._last_stamp = stamp
            return stamp

    # --- reads ---
    def get_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return serialize(self.db[collection].find_one({"_id": doc_id}))

    def find(self, collection: str, filters: Optional[Iterable[Filter]] = None,
             sort: Optional[Sort] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(build_query(filters)).sort(_normalize_sort(sort))
        if limit:
            cursor = cursor.limit(limit)
        return [serialize(x) for x in cursor]

    def query(self, collection: str, filters: Optional[Iterable[Filter]] = None,
              sort: Optional[Sort] = None, page: int = 1, page_size: int = 10,
              cursor: Optional[Dict[str, Any]] = None) -> QueryPage:
        sort_spec = _normalize_sort(sort)
        query = build_query(filters)
        skip = 0
        if cursor is not None:
            query = {"$and": [query, self._after(sort_spec, cursor)]} if query else self._after(sort_spec, cursor)
        elif page > 1:
            skip = (page - 1) * page_size
        rows = list(self.db[collection].find(query).sort(sort_spec).skip(skip).limit(page_size + 1))
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        next_cursor = None
        if rows:
            last = rows[-1]
            next_cursor = {"value": last.get(sort_spec[0][0]), "id": last["_id"]}
        return QueryPage([serialize(r) for r in rows], has_more, next_cursor)

    @staticmethod
    def _after(sort_spec: List[Tuple[str, int]], cursor: Dict[str, Any]) -> Dict[str, Any]:
        name, direction = sort_spec[0]
        op = "$lt" if direction == DESCENDING else "$gt"
        value, last_id = to_storage(cursor.get("value")), cursor["id"]
        if name == "_id":
            return {"_id": {op: last_id}}
        if value is None:
            tie = {name: None, "_id": {op: last_id}}
            if direction == DESCENDING:
                return tie
            return {"$or": [tie, {name: {"$ne": None}}]}
        return {"$or": [{name: {op: value}}, {name: value, "_id": {op: last_id}}]}

    def count(self, collection: str, filters: Optional[Iterable[Filter]] = None) -> int:
        return self.db[collection].count_documents(build_query(filters))

    # --- writes ---
    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        now = self.now()
        stored = to_storage(now)
        doc = _stamp(data, now)
        doc.pop("id", None)
        doc["_id"] = doc_id or new_id()
        doc["createdAt"] = stored
        doc["updatedAt"] = stored
        try:
            self.db[collection].insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(f"{collection}/{doc['_id']} already exists", collection=collection)
        self.hub.publish(collection)
        return doc["_id"]

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        now = self.now()
        stored = to_storage(now)
        doc = _stamp(data, now)
        doc.pop("id", None)
        existing = self.db[collection].find_one({"_id": doc_id}, {"createdAt": 1})
        doc["createdAt"] = existing.get("createdAt", stored) if existing else stored
        doc["updatedAt"] = stored
        self.db[collection].replace_one({"_id": doc_id}, doc, upsert=True)
        self.hub.publish(collection)

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        now = self.now()
        stored = to_storage(now)
        changes = _stamp(partial, now)
        changes.pop("id", None)
        changes["updatedAt"] = stored
        result = self.db[collection].update_one({"_id": doc_id}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFoundError(collection, doc_id)
        self.hub.publish(collection)

    def update_where(self, collection: str, filters: Iterable[Filter], partial: Dict[str, Any]) -> int:
        now = self.now()
        stored = to_storage(now)
        changes = _stamp(partial, now)
        changes["updatedAt"] = stored
        result = self.db[collection].update_many(build_query(filters), {"$set": changes})
        if result.modified_count:
            self.hub.publish(collection)
        return result.modified_count

    def delete(self, collection: str, doc_id: str) -> None:
        self.db[collection].delete_one({"_id": doc_id})
        self.hub.publish(collection)

    def array_union(self, collection: str, doc_id: str, field_name: str, values: List[Any]) -> None:
        self._atomic(collection, doc_id, {"$addToSet": {field_name: {"$each": list(values)}}})

    def array_remove(self, collection: str, doc_id: str, field_name: str, values: List[Any]) -> None:
        self._atomic(collection, doc_id, {"$pull": {field_name: {"$in": list(values)}}})

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> None:
        self._atomic(collection, doc_id, {"$inc": {field_name: amount}})

    def _atomic(self, collection: str, doc_id: str, operation: Dict[str, Any]) -> None:
        operation = dict(operation)
        operation["$set"] = {"updatedAt": to_storage(self.now())}
        result = self.db[collection].update_one({"_id": doc_id}, operation)
        if result.matched_count == 0:
            raise NotFoundError(collection, doc_id)
        self.hub.publish(collection)

    def compare_and_set(self, collection: str, doc_id: str, field_name: str,
                        expected: Iterable[Any], value: Any,
                        extra: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Set ``field_name`` only if its current value is one of ``expected``.

        Returns the updated document, or None when the precondition failed.
        """
        now = self.now()
        stored = to_storage(now)
        changes = _stamp(dict(extra or {}), now)
        changes[field_name] = value
        changes["updatedAt"] = stored
        updated = self.db[collection].find_one_and_update(
            {"_id": doc_id, field_name: {"$in": list(expected)}},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            return None
        self.hub.publish(collection)
        return serialize(updated)

    # --- live queries ---
    def subscribe_document(self, collection: str, doc_id: str,
                           callback: Callable[[Optional[Dict[str, Any]]], None]) -> Subscription:
        return self.hub.add(collection, lambda: self.get_by_id(collection, doc_id), callback)

    def subscribe_query(self, collection: str, callback: Callable[[List[Dict[str, Any]]], None],
                        filters: Optional[Iterable[Filter]] = None, sort: Optional[Sort] = None,
                        limit: Optional[int] = None) -> Subscription:
        filters = list(filters or [])
        return self.hub.add(collection, lambda: self.find(collection, filters, sort, limit), callback, [])

    def watch_changes(self) -> ChangeStreamWatcher:
        watcher = ChangeStreamWatcher(self.db, self.hub)
        watcher.start()
        return watcher

    # --- health ---
    def collection_names(self) -> List[str]:
        return self.db.list_collection_names()
