"""
Per-tournament serialization.

Batch operations (bracket build/recreate, round advancement, schedule
generation, resets) hold a tournament's lock exclusively. Single-match edits
hold it shared plus a per-match mutex, so edits to different matches run
concurrently but never interleave with a batch operation. Waiting writers
block new readers so a stream of match edits cannot starve a batch.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator


class TournamentLock:
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0
        self._match_mutexes: Dict[int, threading.Lock] = {}

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    def match_mutex(self, match_id: int) -> threading.Lock:
        with self._cond:
            mutex = self._match_mutexes.get(match_id)
            if mutex is None:
                mutex = self._match_mutexes[match_id] = threading.Lock()
            return mutex

    def forget_matches(self, match_ids: Iterable[int]) -> None:
        with self._cond:
            for match_id in match_ids:
                self._match_mutexes.pop(match_id, None)


_registry: Dict[int, TournamentLock] = {}
_registry_lock = threading.Lock()


def lock_for(tournament_id: int) -> TournamentLock:
    with _registry_lock:
        lock = _registry.get(tournament_id)
        if lock is None:
            lock = _registry[tournament_id] = TournamentLock()
        return lock


def forget_matches(tournament_id: int, match_ids: Iterable[int]) -> None:
    """Drop the mutexes of deleted matches. Callers hold the tournament exclusively."""
    with _registry_lock:
        lock = _registry.get(tournament_id)
    if lock is not None:
        lock.forget_matches(match_ids)


@contextmanager
def exclusive_tournament(tournament_id: int) -> Iterator[None]:
    with lock_for(tournament_id).exclusive():
        yield


@contextmanager
def shared_match(tournament_id: int, match_id: int) -> Iterator[None]:
    lock = lock_for(tournament_id)
    with lock.shared():
        with lock.match_mutex(match_id):
            yield
