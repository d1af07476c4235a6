# Overview: Persisted key-value slots; hydration, write-through, atomic blocks and external change sync.
"""
Persisted key-value store.

A PersistedSlot is one typed value stored as JSON text under a key. It reads
lazily (hydration), writes through on every ``set`` before returning, and
follows changes made to the same key by anyone else:

- another slot instance in this process: the backend tells it right after the
  write commits;
- another process sharing the database: ``sync()`` notices the stored version
  moved and re-reads.

Reconciliation policy (``reconcile``): a stored value wins; an absent key or a
value that cannot be parsed falls back to the slot's default. Read failures
degrade to the default and are logged. Write failures raise
StorageAccessError and leave the in-memory value untouched.

Backends:
- SqlSlotBackend: the ``storage_slots`` table through Flask-SQLAlchemy.
  Outside an application context it behaves as if no storage existed.
- MemorySlotBackend: a dict, used when nothing is bound and in unit tests.

``backend.atomic()`` groups writes: they commit together or not at all, and
slot values only change on commit.
"""

from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, Generic, Optional, TypeVar

from flask import has_app_context
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageAccessError
from ..extensions import db
from ..models import StorageSlot
from lahemir.time_utils import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()

ChangeListener = Callable[[str, Any], None]


def reconcile(raw: Optional[str], default_factory: Callable[[], T], decode: Callable[[Any], T]) -> T:
    """
    Decide the in-memory value of a slot from what storage holds.

    - None (key absent or cleared) -> default
    - unparsable JSON or a document ``decode`` rejects -> default
    - anything else -> the decoded stored value
    """
    if raw is None:
        return default_factory()
    try:
        return decode(json.loads(raw))
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Discarding unreadable stored value, using default: %s", exc)
        return default_factory()


class SlotBackend:
    """Storage interface shared by the backends."""

    def __init__(self):
        self._listeners: dict[str, list[ChangeListener]] = {}
        self._depth = 0
        self._on_commit: list[Callable[[], None]] = []
        self._on_rollback: list[Callable[[], None]] = []
        self._changed: list[tuple[str, Any]] = []

    # -- interface ---------------------------------------------------------

    def load(self, key: str) -> tuple[Optional[str], int]:
        raise NotImplementedError

    def save(self, key: str, raw: str) -> int:
        raise NotImplementedError

    def clear(self, key: str) -> None:
        raise NotImplementedError

    def version(self, key: str) -> int:
        raise NotImplementedError

    def _begin(self) -> None:
        pass

    def _commit(self) -> None:
        pass

    def _rollback(self) -> None:
        pass

    # -- change notification -----------------------------------------------

    def subscribe_to_external_change(self, key: str, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener(key, origin)``; returns an unsubscribe callable."""
        self._listeners.setdefault(key, []).append(listener)

        def _unsubscribe():
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    def _dispatch(self, key: str, origin: Any) -> None:
        for listener in list(self._listeners.get(key, [])):
            listener(key, origin)

    def _written(self, key: str, origin: Any) -> None:
        if self._depth:
            self._changed.append((key, origin))
        else:
            self._dispatch(key, origin)

    # -- atomic blocks -----------------------------------------------------

    @property
    def in_atomic(self) -> bool:
        return self._depth > 0

    def after_commit(self, callback: Callable[[], None]) -> None:
        if self._depth:
            self._on_commit.append(callback)
        else:
            callback()

    def after_rollback(self, callback: Callable[[], None]) -> None:
        if self._depth:
            self._on_rollback.append(callback)

    @contextmanager
    def atomic(self):
        """
        Group slot writes. Nested blocks join the outermost one.

        On any exception every write of the block is discarded and the
        exception propagates.
        """
        if self._depth == 0:
            self._begin()
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._finish(commit=False)
            raise
        self._depth -= 1
        if self._depth == 0:
            self._finish(commit=True)

    def _finish(self, *, commit: bool) -> None:
        on_commit, on_rollback, changed = self._on_commit, self._on_rollback, self._changed
        self._on_commit, self._on_rollback, self._changed = [], [], []
        if commit:
            try:
                self._commit()
            except StorageAccessError:
                for callback in on_rollback:
                    callback()
                raise
            for callback in on_commit:
                callback()
            for key, origin in changed:
                self._dispatch(key, origin)
        else:
            self._rollback()
            for callback in on_rollback:
                callback()


class MemorySlotBackend(SlotBackend):
    """Process-local storage; nothing survives a restart."""

    def __init__(self):
        super().__init__()
        self._data: dict[str, tuple[str, int]] = {}
        self._snapshot: Optional[dict[str, tuple[str, int]]] = None

    def load(self, key):
        raw, version = self._data.get(key, (None, 0))
        return raw, version

    def save(self, key, raw, origin=None):
        _, version = self._data.get(key, (None, 0))
        self._data[key] = (raw, version + 1)
        self._written(key, origin)
        return version + 1

    def clear(self, key, origin=None):
        _, version = self._data.get(key, (None, 0))
        self._data[key] = (None, version + 1)
        self._written(key, origin)

    def version(self, key):
        return self._data.get(key, (None, 0))[1]

    def _begin(self):
        self._snapshot = dict(self._data)

    def _commit(self):
        self._snapshot = None

    def _rollback(self):
        if self._snapshot is not None:
            self._data = self._snapshot
        self._snapshot = None


class SqlSlotBackend(SlotBackend):
    """
    Slots stored in the ``storage_slots`` table.

    Reads select columns rather than entities so a row changed by another
    process is never served from the session identity map.
    """

    @staticmethod
    def available() -> bool:
        return has_app_context()

    def load(self, key):
        if not self.available():
            return None, 0
        try:
            row = db.session.execute(
                select(StorageSlot.value, StorageSlot.version).where(StorageSlot.key == key)
            ).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError(f"Failed to read storage key '{key}'") from exc
        if row is None:
            return None, 0
        return row.value, row.version

    def version(self, key):
        if not self.available():
            return 0
        try:
            version = db.session.execute(
                select(StorageSlot.version).where(StorageSlot.key == key)
            ).scalar()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError(f"Failed to read storage key '{key}'") from exc
        return version or 0

    def _put(self, key, raw, action):
        """Write ``raw`` (None clears) and bump the row's version; returns the new version."""
        try:
            slot = db.session.get(StorageSlot, key, populate_existing=True)
            if slot is None:
                slot = StorageSlot(key=key, value=raw, version=1, updated_at=utcnow())
                db.session.add(slot)
            else:
                slot.value = raw
                slot.version = (slot.version or 0) + 1
                slot.updated_at = utcnow()
            if self._depth:
                db.session.flush()
            else:
                db.session.commit()
            return slot.version
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError(f"Failed to {action} storage key '{key}'") from exc

    def save(self, key, raw, origin=None):
        if not self.available():
            return 0
        version = self._put(key, raw, "write")
        self._written(key, origin)
        return version

    def clear(self, key, origin=None):
        # A cleared slot keeps its row with a NULL value; versions never restart.
        if not self.available():
            return
        self._put(key, None, "clear")
        self._written(key, origin)

    def _commit(self):
        if not self.available():
            return
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageAccessError("Failed to commit storage changes") from exc

    def _rollback(self):
        if self.available():
            db.session.rollback()


class PersistedSlot(Generic[T]):
    """
    A typed value persisted under ``key``.

    ``default`` is a value (deep-copied on use) or a zero-argument callable.
    ``decode`` turns the parsed JSON into T; ``encode`` does the reverse.
    """

    def __init__(
        self,
        key: str,
        default: T | Callable[[], T],
        *,
        backend: Optional[SlotBackend] = None,
        decode: Optional[Callable[[Any], T]] = None,
        encode: Optional[Callable[[T], Any]] = None,
    ):
        self.key = key
        self._default = default
        self.backend = backend if backend is not None else MemorySlotBackend()
        self._decode = decode or (lambda doc: doc)
        self._encode = encode or (lambda value: value)
        self._value: Any = _MISSING
        self._pending: Any = _MISSING
        self._version = 0
        self._subscribers: list[Callable[[T], None]] = []
        self.backend.subscribe_to_external_change(key, self._on_external_change)

    def default(self) -> T:
        if callable(self._default):
            return self._default()
        return copy.deepcopy(self._default)

    def _hydrate(self) -> None:
        try:
            raw, version = self.backend.load(self.key)
        except StorageAccessError:
            logger.exception("Error reading storage key '%s', using default", self.key)
            raw, version = None, self._version
        self._value = reconcile(raw, self.default, self._decode)
        self._version = version

    def get(self) -> T:
        if self._pending is not _MISSING:
            return self._pending
        if self._value is _MISSING:
            self._hydrate()
        return self._value

    def set(self, value: T | Callable[[T], T]) -> T:
        """
        Store a new value (or ``updater(current) -> new``).

        The write reaches storage before this returns. Inside an atomic block
        the new value is visible to ``get`` immediately but only becomes the
        slot's value when the block commits.
        """
        new_value = value(self.get()) if callable(value) else value
        try:
            raw = json.dumps(self._encode(new_value), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageAccessError(f"Value for '{self.key}' is not serializable") from exc

        version = self.backend.save(self.key, raw, origin=self)

        if self.backend.in_atomic:
            self._pending = new_value
            self.backend.after_commit(lambda: self._apply(new_value, version))
            self.backend.after_rollback(self._discard_pending)
        else:
            self._apply(new_value, version)
        return new_value

    def clear(self) -> T:
        """Remove the stored value; the slot falls back to its default."""
        self.backend.clear(self.key, origin=self)
        fresh = self.default()
        if self.backend.in_atomic:
            self._pending = fresh
        self.backend.after_commit(lambda: self._apply(fresh, self.backend.version(self.key)))
        self.backend.after_rollback(self._discard_pending)
        return fresh

    def _apply(self, value: T, version: int) -> None:
        self._pending = _MISSING
        self._value = value
        self._version = version

    def _discard_pending(self) -> None:
        self._pending = _MISSING

    # -- external changes --------------------------------------------------

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Call ``listener(new_value)`` whenever an external change lands."""
        self._subscribers.append(listener)
        return lambda: self._subscribers.remove(listener) if listener in self._subscribers else None

    def _on_external_change(self, key: str, origin: Any) -> None:
        if origin is self:
            return
        self._reload()

    def _reload(self) -> bool:
        previous = self._value
        self._hydrate()
        if previous is not _MISSING and previous == self._value:
            return False
        for listener in list(self._subscribers):
            listener(self._value)
        return True

    def sync(self) -> bool:
        """
        Pull a change made outside this process, if any.

        Returns True when the in-memory value was replaced.
        """
        if self._value is _MISSING:
            self._hydrate()
            return False
        try:
            stored_version = self.backend.version(self.key)
        except StorageAccessError:
            logger.exception("Error checking storage key '%s' for changes", self.key)
            return False
        if stored_version == self._version:
            return False
        return self._reload()
