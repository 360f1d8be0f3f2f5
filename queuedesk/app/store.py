# queuedesk/app/store.py
import json
from typing import Any, Dict, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from .db import SessionLocal
from .models import StoreItem

QUEUE_KEY = "queue"
SERVICED_KEY = "serviced"
TICKET_COUNTER_KEY = "ticketCounter"


class QueueStore:
    """
    Versioned key/value store of JSON documents.

    Every key carries a version that goes up on each write. ``compare_and_set``
    writes several keys in one transaction only if none of them moved since
    they were read; version 0 means "key must not exist yet".
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def read(self, key: str, default: Any = None) -> Tuple[Any, int]:
        db = self.session_factory()
        try:
            item = db.get(StoreItem, key)
            if item is None:
                return default, 0
            return json.loads(item.value), item.version
        finally:
            db.close()

    def get(self, key: str, default: Any = None) -> Any:
        return self.read(key, default)[0]

    def set(self, key: str, value: Any) -> None:
        db = self.session_factory()
        try:
            with db.begin():
                item = db.get(StoreItem, key)
                if item is None:
                    db.add(StoreItem(key=key, value=json.dumps(value), version=1))
                else:
                    item.value = json.dumps(value)
                    item.version += 1
        finally:
            db.close()

    def compare_and_set(self, changes: Dict[str, Tuple[Any, int]]) -> bool:
        """Apply ``{key: (value, expected_version)}`` atomically; False on conflict."""
        db = self.session_factory()
        try:
            try:
                with db.begin():
                    for key, (value, expected) in changes.items():
                        payload = json.dumps(value)
                        if expected == 0:
                            db.add(StoreItem(key=key, value=payload, version=1))
                            db.flush()
                            continue
                        res = db.execute(
                            update(StoreItem)
                            .where(StoreItem.key == key, StoreItem.version == expected)
                            .values(value=payload, version=StoreItem.version + 1)
                            .execution_options(synchronize_session=False)
                        )
                        if res.rowcount != 1:
                            raise _Conflict(key)
            except (_Conflict, IntegrityError):
                return False
            return True
        finally:
            db.close()


class _Conflict(Exception):
    pass
