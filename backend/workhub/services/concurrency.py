# Overview: Row locking and the thread fan-out used by the project aggregators.

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Mapping, TypeVar

from flask import current_app

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_concurrently(tasks: Mapping[str, Callable[[], T]], *, max_workers: int | None = None) -> dict[str, T]:
    """
    Run independent read callables concurrently and collect results by name.

    Each worker runs inside its own application context, so it gets its own
    scoped database session. Callables must return plain data, not ORM
    instances bound to the worker's session.

    With FANOUT_MAX_WORKERS <= 1 (or a single task) the callables run inline
    on the caller's session. The first failing callable's exception is
    re-raised; there is no retry.
    """
    app = current_app._get_current_object()
    workers = max_workers if max_workers is not None else int(app.config.get("FANOUT_MAX_WORKERS", 8))

    if workers <= 1 or len(tasks) <= 1:
        return {name: fn() for name, fn in tasks.items()}

    def _run(fn: Callable[[], T]) -> T:
        with app.app_context():
            return fn()

    with ThreadPoolExecutor(max_workers=min(workers, len(tasks)), thread_name_prefix="fanout") as pool:
        futures = {name: pool.submit(_run, fn) for name, fn in tasks.items()}
        return {name: future.result() for name, future in futures.items()}
