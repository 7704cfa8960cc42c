"""
Per-token client sessions.

Each bearer token owns one ClientContext: its own stores, navigator and
auth listener. Sessions share the gateway (and its subscription hub), the
blob storage and the identity provider.
"""
import logging
import threading
from collections import OrderedDict
from typing import List, Optional

from .auth import IdentityProvider
from .database import DocumentGateway
from .errors import AuthError
from .storage import BlobStorage
from .viewmodels import AuthViewModel, ClientContext

logger = logging.getLogger(__name__)


class ClientSession:
    def __init__(self, ctx: ClientContext):
        self.ctx = ctx
        self.auth = AuthViewModel(ctx)
        self.auth.watch_auth_state()

    @property
    def token(self) -> Optional[str]:
        return self.ctx.auth.token

    @property
    def is_authenticated(self) -> bool:
        return self.ctx.auth_store.is_authenticated

    def close(self) -> None:
        self.auth.close()


class SessionRegistry:
    """Live sessions by token, least recently used first.

    At most ``max_sessions`` are kept. The oldest is closed when a new one
    arrives; its token stays valid and is restored on the next request.
    """

    def __init__(self, gateway: DocumentGateway, storage: BlobStorage, provider: IdentityProvider,
                 max_sessions: int = 1000):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.gateway = gateway
        self.storage = storage
        self.provider = provider
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, ClientSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self) -> ClientSession:
        """An anonymous session, used for sign-in and sign-up."""
        return ClientSession(ClientContext.create(self.gateway, self.storage, self.provider))

    def attach(self, session: ClientSession) -> str:
        """Register a session that has just signed in; returns its token."""
        token = session.token
        if not token:
            raise AuthError("Session is not signed in")
        with self._lock:
            replaced = self._sessions.pop(token, None)
            self._sessions[token] = session
            evicted = self._evict()
        if replaced is not None and replaced is not session:
            replaced.close()
        self._close_evicted(evicted)
        return token

    def resolve(self, token: str) -> ClientSession:
        """The session for ``token``, restoring it from the provider if needed."""
        with self._lock:
            session = self._sessions.get(token)
            if session is not None:
                self._sessions.move_to_end(token)
        if session is not None:
            return session
        session = self.open()
        try:
            session.ctx.auth.restore(token)
        except AuthError:
            session.close()
            raise
        with self._lock:
            # a concurrent request may have restored it first
            existing = self._sessions.setdefault(token, session)
            evicted = self._evict()
        if existing is not session:
            session.close()
        self._close_evicted(evicted)
        logger.info(f"Restored session for {existing.ctx.auth_store.user_id}")
        return existing

    def _evict(self) -> List[ClientSession]:
        # caller holds the lock
        evicted = []
        while len(self._sessions) > self.max_sessions:
            _, oldest = self._sessions.popitem(last=False)
            evicted.append(oldest)
        return evicted

    def _close_evicted(self, evicted: List[ClientSession]) -> None:
        for session in evicted:
            logger.info(f"Evicting idle session for {session.ctx.auth_store.user_id}")
            session.close()

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions

    def close(self, token: str) -> None:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
