import hashlib
import json
import logging
import threading
import uuid
from collections import deque
from typing import Any, Dict, List, Optional

from .entities import utc_now
from .enums import AuditAction


logger = logging.getLogger(__name__)


class AuditLogEntry:
    """One hash-chained record of an access decision or mutation."""

    def __init__(self, action: AuditAction, principal_id: str, data: Dict[str, Any], prev_hash: str):
        self.id = str(uuid.uuid4())
        self.created_at = utc_now()
        self.action = action
        self.principal_id = principal_id
        self.data = data
        self.prev_hash = prev_hash
        self.hash = self._compute_hash()

    def _compute_hash(self):
        h = hashlib.sha256()
        h.update(json.dumps({
            "action": self.action.value,
            "principal_id": self.principal_id,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "prev_hash": self.prev_hash
        }, sort_keys=True, default=str).encode())
        return h.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "action": self.action.value,
            "principal_id": self.principal_id,
            "data": self.data,
            "prev_hash": self.prev_hash,
            "hash": self.hash,
        }


class AuditTrail:
    """Bounded in-memory audit chain, mirrored to the log."""

    GENESIS_HASH = "0" * 64

    def __init__(self, max_entries: int = 1000):
        self._entries: deque = deque(maxlen=max_entries)
        self._last_hash = self.GENESIS_HASH
        self._lock = threading.Lock()

    def record(self, audit_action: AuditAction, principal_id: str, **data: Any) -> AuditLogEntry:
        """Append an entry; ``data`` may carry any keys, including ``action``."""
        with self._lock:
            entry = AuditLogEntry(audit_action, principal_id, data, self._last_hash)
            self._entries.append(entry)
            self._last_hash = entry.hash

        warn = audit_action in (AuditAction.POLICY_ERROR, AuditAction.SYNC_FAILED)
        logger.log(logging.WARNING if warn else logging.INFO,
                   "audit %s principal=%s %s", audit_action.value, principal_id, data)
        return entry

    def entries(self, action: Optional[AuditAction] = None) -> List[AuditLogEntry]:
        with self._lock:
            items = list(self._entries)
        if action is None:
            return items
        return [entry for entry in items if entry.action == action]

    def verify(self) -> bool:
        """Check that every retained entry links to its predecessor."""
        with self._lock:
            items = list(self._entries)
        for previous, current in zip(items, items[1:]):
            if current.prev_hash != previous.hash or current.hash != current._compute_hash():
                return False
        return True
