"""
Device-local key-value store used for crash recovery and identity selection.
"""

import threading
from typing import Optional

from pydantic import ValidationError

from trk.storage.db import init_db
from trk.utils.log import get_logger
from trk.utils.validate import Identity, IdentityList

logger = get_logger(__name__)

CURRENT_PATH_KEY = "current_path"
ACTIVE_IDENTITY_KEY = "active_identity"
IDENTITIES_KEY = "identities"


class RecoveryStore:
    """
    String values keyed by name, overwritten in place, in the `kv` table.
    """

    def __init__(self, db_path: str):
        self.conn = init_db(db_path)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def remove(self, key: str) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))


class IdentityBook:
    """
    The active identity of this device plus every identity used on it before.
    """

    def __init__(self, store: RecoveryStore):
        self.store = store

    def active(self) -> Optional[Identity]:
        raw = self.store.get(ACTIVE_IDENTITY_KEY)
        if raw is None:
            return None
        try:
            return Identity.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable active identity")
            self.store.remove(ACTIVE_IDENTITY_KEY)
            return None

    def history(self) -> list[Identity]:
        raw = self.store.get(IDENTITIES_KEY)
        if raw is None:
            return []
        try:
            return IdentityList.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable identity history")
            self.store.remove(IDENTITIES_KEY)
            return []

    def find(self, document_id: str) -> Optional[Identity]:
        """
        Look up a previously used identity by its document id.
        """
        for identity in self.history():
            if identity.document_id == document_id:
                return identity
        return None

    def select(self, identity: Identity) -> None:
        """
        Make `identity` the active one and remember it if it is new.
        """
        self.store.set(ACTIVE_IDENTITY_KEY, identity.model_dump_json())
        known = self.history()
        if not any(i.document_id == identity.document_id for i in known):
            known.append(identity)
            self.store.set(IDENTITIES_KEY, IdentityList.dump_json(known).decode())
            logger.info("Registered identity %s", identity.document_id)
