from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from .errors import ReentrantCallError, UnauthorizedCallerError


class ReentrancyGuard:
    """Scoped exclusive-execution flag, released on every exit path."""

    def __init__(self):
        self._held_by: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._held_by is not None

    @contextmanager
    def __call__(self, operation: str) -> Iterator[None]:
        if self._held_by is not None:
            raise ReentrantCallError(
                f"Cannot enter {operation} while {self._held_by} is in progress"
            )
        self._held_by = operation
        try:
            yield
        finally:
            self._held_by = None


class CallerGate:
    """Allow-list checked at the top of each guarded operation."""

    def __init__(self, role: str, allowed: Iterable[str] = ()):
        self.role = role
        self._allowed: set[str] = set(allowed)

    def allow(self, address: str) -> None:
        self._allowed.add(address)

    def revoke(self, address: str) -> None:
        self._allowed.discard(address)

    def is_allowed(self, address: str) -> bool:
        return address in self._allowed

    def require(self, caller: str) -> None:
        if caller not in self._allowed:
            raise UnauthorizedCallerError(f"{caller} is not an approved {self.role}")
