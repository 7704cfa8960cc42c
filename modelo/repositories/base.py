import copy
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Iterable, Optional, Type

from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from ..database import DocumentGateway
from ..errors import BackendError, FormValidationError, ModeloError, validation_errors
from ..storage import BlobStorage

logger = logging.getLogger(__name__)


def repository_operation(context: str):
    """Log failures with their operation name and re-raise them.

    Driver errors are wrapped in BackendError; package errors pass through.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ModeloError as e:
                logger.warning(f"{context} failed: {e}")
                raise
            except PyMongoError as e:
                logger.error(f"{context} - Database error: {e}")
                raise BackendError(f"{context} failed", e)
            except ValidationError as e:
                logger.warning(f"{context} - Invalid data: {e}")
                raise FormValidationError(validation_errors(e))
        return decorated_function
    return decorator


def to_datetime(value: Any) -> Optional[datetime]:
    """Convert any wire timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return to_datetime(parsed)
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(value["seconds"] + value.get("nanoseconds", 0) / 1e9, tz=timezone.utc)
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def normalize_dates(doc: Optional[Dict[str, Any]], fields: Iterable[str]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = copy.deepcopy(doc)
    for path in fields:
        parts = path.split(".")
        target = doc
        for part in parts[:-1]:
            target = target.get(part) if isinstance(target, dict) else None
            if target is None:
                break
        if isinstance(target, dict) and target.get(parts[-1]) is not None:
            target[parts[-1]] = to_datetime(target[parts[-1]])
    return doc


def timestamp_ms() -> int:
    return int(time.time() * 1000)


class BaseRepository:
    collection: str = ""
    model: Type[BaseModel] = BaseModel
    date_fields = ("createdAt", "updatedAt")

    def __init__(self, gateway: DocumentGateway, storage: Optional[BlobStorage] = None):
        self.gateway = gateway
        self.storage = storage

    def to_entity(self, doc: Optional[Dict[str, Any]]):
        if doc is None:
            return None
        return self.model.model_validate(normalize_dates(doc, self.date_fields))

    def _get(self, doc_id: str):
        return self.to_entity(self.gateway.get_by_id(self.collection, doc_id))
