"""
Execution Host

Serialized execution environment shared by every component:
- One re-entrant lock so each entry point runs to completion
- Block height used for refund eligibility
- All-or-nothing transactions over every registered component
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class Stateful:
    """Mixin for components whose mutable state takes part in transactions.

    ``state_fields`` hold scalars or flat dicts of immutable values; a
    shallow copy is enough to restore them. ``log_fields`` are append-only
    lists, saved as their length and truncated on rollback.
    """

    state_fields: tuple[str, ...] = ()
    log_fields: tuple[str, ...] = ()

    def snapshot(self) -> dict[str, Any]:
        saved = {}
        for name in self.state_fields:
            value = getattr(self, name)
            saved[name] = dict(value) if isinstance(value, dict) else value
        for name in self.log_fields:
            saved[name] = len(getattr(self, name))
        return saved

    def restore(self, saved: dict[str, Any]) -> None:
        for name in self.log_fields:
            del getattr(self, name)[saved[name]:]
        for name in self.state_fields:
            setattr(self, name, saved[name])


class Host:
    def __init__(self, height: int = 0):
        self.height = height
        self._lock = threading.RLock()
        self._components: list[Stateful] = []
        self._depth = 0

    def register(self, component: Stateful) -> Stateful:
        self._components.append(component)
        return component

    def advance(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("height never decreases")
        with self._lock:
            self.height += blocks
            return self.height

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def reading(self) -> Iterator[None]:
        """Hold the lock for a query so it only sees committed state."""
        with self._lock:
            yield

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                # Nested calls join the outermost transaction.
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            saved = [(component, component.snapshot()) for component in self._components]
            self._depth = 1
            try:
                yield
            except BaseException:
                for component, state in saved:
                    component.restore(state)
                logger.debug(f"Transaction rolled back at height {self.height}")
                raise
            finally:
                self._depth = 0
