"""
Error taxonomy shared by the gateway, repositories and view-models.
"""
from typing import Dict, List, Optional


class ModeloError(Exception):
    """Base class for every error raised by the package."""

    status_code = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(ModeloError):
    status_code = 404

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found", collection=collection, doc_id=doc_id)
        self.collection = collection
        self.doc_id = doc_id


class PermissionDeniedError(ModeloError):
    status_code = 403


class ConflictError(ModeloError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"{entity} cannot move from {current} to {target}",
                         entity=entity, current=current, target=target)
        self.current = current
        self.target = target


class BackendError(ModeloError):
    """Wraps driver or storage failures."""

    status_code = 502

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class AuthError(ModeloError):
    status_code = 401


class FormValidationError(ModeloError):
    status_code = 422

    def __init__(self, errors: Dict[str, List[str]]):
        first = next(iter(errors.values()), ["Invalid data"])
        super().__init__(first[0] if first else "Invalid data")
        self.errors = errors


def validation_errors(exc) -> Dict[str, List[str]]:
    """Flatten a pydantic ValidationError into ``{field: [messages]}``."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        key = ".".join(str(p) for p in err["loc"]) or "__root__"
        errors.setdefault(key, []).append(err["msg"])
    return errors
