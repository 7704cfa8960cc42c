"""
Identity provider: credentials and session tokens.

Credentials live in their own collection, separate from the ``users`` profile
documents, and share the same subject id (``uid``).
"""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .database import DocumentGateway, new_id
from .errors import AuthError, ConflictError, FormValidationError, validation_errors
from .events import ListenerSet, Subscription
from .schemas import USERS, parse_user

logger = logging.getLogger(__name__)

CREDENTIALS = "credentials"


# Very light password hashing
def hash_password(password: str, salt: Optional[str] = None) -> Dict[str, str]:
    salt = salt or secrets.token_hex(8)
    hashed = hashlib.sha256((salt + password).encode()).hexdigest()
    return {"salt": salt, "hash": hashed}


def verify_password(password: str, salt: str, hash_val: str) -> bool:
    return secrets.compare_digest(hashlib.sha256((salt + password).encode()).hexdigest(), hash_val)


def new_token() -> str:
    return secrets.token_hex(24)


@dataclass
class AuthUser:
    uid: str
    email: str
    display_name: Optional[str] = None


@dataclass
class AuthResult:
    user: AuthUser
    token: str


def _auth_user(doc: Dict[str, Any]) -> AuthUser:
    return AuthUser(uid=doc["id"], email=doc["email"], display_name=doc.get("displayName"))


class IdentityProvider:
    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway
        self.gateway.db[CREDENTIALS].create_index("email", unique=True)

    def _by_email(self, email: str) -> Optional[Dict[str, Any]]:
        found = self.gateway.find(CREDENTIALS, [("email", "==", email.strip().lower())], limit=1)
        return found[0] if found else None

    def _by_token(self, token: str) -> Optional[Dict[str, Any]]:
        found = self.gateway.find(CREDENTIALS, [("tokens", "array-contains", token)], limit=1)
        return found[0] if found else None

    def register(self, email: str, password: str, profile_data: Dict[str, Any]) -> AuthResult:
        """Create the identity record, then the ``users/{uid}`` profile document."""
        email = email.strip().lower()
        uid = new_id()
        profile = dict(profile_data)
        profile.update({"id": uid, "uid": uid, "email": email})
        profile.setdefault("fullName", "")
        profile.setdefault("role", "model")
        try:
            user = parse_user(profile)
        except ValidationError as e:
            raise FormValidationError(validation_errors(e))

        if self._by_email(email):
            raise ConflictError("Email already registered", email=email)
        token = new_token()
        self.gateway.add(CREDENTIALS, {
            "email": email,
            "displayName": profile.get("fullName") or None,
            "password": hash_password(password),
            "tokens": [token],
        }, doc_id=uid)

        doc = user.to_wire(exclude={"id", "created_at", "updated_at"})
        try:
            self.gateway.set(USERS, uid, doc)
        except Exception:
            logger.error(f"Profile write failed after identity creation for {uid}")
            raise
        logger.info(f"Registered {user.role} {uid}")
        return AuthResult(AuthUser(uid, email, profile.get("fullName") or None), token)

    def login(self, email: str, password: str) -> AuthResult:
        cred = self._by_email(email)
        if not cred or not verify_password(password, cred["password"]["salt"], cred["password"]["hash"]):
            raise AuthError("Invalid credentials")
        token = new_token()
        self.gateway.array_union(CREDENTIALS, cred["id"], "tokens", [token])
        return AuthResult(_auth_user(cred), token)

    def logout(self, token: str) -> None:
        cred = self._by_token(token)
        if cred:
            self.gateway.array_remove(CREDENTIALS, cred["id"], "tokens", [token])

    def verify_token(self, token: str) -> AuthUser:
        cred = self._by_token(token)
        if not cred:
            raise AuthError("Invalid or expired token")
        return _auth_user(cred)

    def reset_password(self, email: str) -> Optional[str]:
        """Issue a one-time reset token. Unknown emails are accepted silently."""
        cred = self._by_email(email)
        if not cred:
            logger.info(f"Password reset requested for unknown email {email}")
            return None
        reset_token = new_token()
        self.gateway.update(CREDENTIALS, cred["id"], {"resetToken": reset_token})
        logger.info(f"Password reset token issued for {cred['id']}")
        return reset_token

    def confirm_password_reset(self, reset_token: str, new_password: str) -> None:
        found = self.gateway.find(CREDENTIALS, [("resetToken", "==", reset_token)], limit=1)
        if not found:
            raise AuthError("Invalid reset token")
        self.gateway.update(CREDENTIALS, found[0]["id"], {
            "password": hash_password(new_password),
            "resetToken": None,
            "tokens": [],
        })

    def reauthenticate(self, uid: str, password: str) -> None:
        cred = self.gateway.get_by_id(CREDENTIALS, uid)
        if not cred or not verify_password(password, cred["password"]["salt"], cred["password"]["hash"]):
            raise AuthError("Reauthentication failed")

    def update_password(self, uid: str, new_password: str) -> None:
        self.gateway.update(CREDENTIALS, uid, {"password": hash_password(new_password)})

    def update_email(self, uid: str, new_email: str) -> None:
        new_email = new_email.strip().lower()
        existing = self._by_email(new_email)
        if existing and existing["id"] != uid:
            raise ConflictError("Email already registered", email=new_email)
        self.gateway.update(CREDENTIALS, uid, {"email": new_email})
        self.gateway.update(USERS, uid, {"email": new_email})


class AuthClient:
    """One client's view of the identity provider: current user plus state events."""

    def __init__(self, provider: IdentityProvider):
        self.provider = provider
        self.current_user: Optional[AuthUser] = None
        self.token: Optional[str] = None
        self._listeners = ListenerSet()

    def _set(self, user: Optional[AuthUser], token: Optional[str]) -> None:
        self.current_user = user
        self.token = token
        self._listeners.notify(user)

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], None]) -> Subscription:
        subscription = self._listeners.add(callback)
        callback(self.current_user)
        return subscription

    def restore(self, token: str) -> AuthUser:
        user = self.provider.verify_token(token)
        self._set(user, token)
        return user

    def register(self, email: str, password: str, profile_data: Dict[str, Any]) -> AuthResult:
        result = self.provider.register(email, password, profile_data)
        self._set(result.user, result.token)
        return result

    def login(self, email: str, password: str) -> AuthResult:
        result = self.provider.login(email, password)
        self._set(result.user, result.token)
        return result

    def logout(self) -> None:
        if self.token:
            self.provider.logout(self.token)
        self._set(None, None)

    def reset_password(self, email: str) -> Optional[str]:
        return self.provider.reset_password(email)

    def reauthenticate(self, password: str) -> None:
        if not self.current_user:
            raise AuthError("Not signed in")
        self.provider.reauthenticate(self.current_user.uid, password)

    def update_password(self, current_password: str, new_password: str) -> None:
        self.reauthenticate(current_password)
        self.provider.update_password(self.current_user.uid, new_password)
