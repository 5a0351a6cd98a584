from __future__ import annotations

import threading
from dataclasses import dataclass, field
from uuid import uuid4

from services.api.app.services.cart import Cart
from services.api.app.services.checkout import CheckoutStateMachine


@dataclass
class ShopSession:
    session_id: str
    cart: Cart = field(default_factory=Cart)
    checkout: CheckoutStateMachine | None = None
    # Held (non-blocking) for the duration of a submission.
    submit_lock: threading.Lock = field(default_factory=threading.Lock)

    def end_checkout(self) -> None:
        self.checkout = None


class InMemoryStore:
    def __init__(self) -> None:
        self._sessions: dict[str, ShopSession] = {}
        self._lock = threading.Lock()

    def create_session(self) -> ShopSession:
        session = ShopSession(session_id=uuid4().hex)
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> ShopSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def drop_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


store = InMemoryStore()
