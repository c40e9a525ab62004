"""Lazily evaluated single-shot units of work."""
from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class Deferred(Generic[T]):
    """Describes work that only happens when it is run.

    Building a ``Deferred`` performs no I/O. Each call to :meth:`run` (or
    :meth:`submit`) executes the wrapped callable once; nothing is memoized
    and nothing is retried.
    """

    __slots__ = ("_work", "label")

    def __init__(self, work: Callable[[], T], label: str = "") -> None:
        self._work = work
        self.label = label

    def run(self) -> T:
        """Execute the work on the calling thread."""
        return self._work()

    def submit(self, executor: Executor) -> "Future[T]":
        """Schedule the work on ``executor``."""
        return executor.submit(self._work)

    def map(self, func: Callable[[T], U]) -> Deferred[U]:
        return Deferred(lambda: func(self._work()), self.label)

    def __repr__(self) -> str:
        return f"Deferred({self.label or self._work!r})"


__all__ = ["Deferred"]
