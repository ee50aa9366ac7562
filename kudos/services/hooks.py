"""
kudos.services.hooks — Post-Grant Side Effects
===============================================

Callables registered here run after a grant has been committed, e.g. an
achievement checker or a notification sender.  They run on a small thread
pool so the grant response never waits on them, and a failing hook is only
logged: the ledger entry it follows is already durable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GrantEvent:
    """What a hook is told about a committed grant."""

    student_id: int
    entry_id: int
    points: int
    category: str
    balance: int | None = None
    lifetime_points: int | None = None
    level: int | None = None


PostGrantHook = Callable[[GrantEvent], None]

_hooks: list[PostGrantHook] = []
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="kudos-hook")


def register_post_grant_hook(hook: PostGrantHook) -> PostGrantHook:
    """Register *hook*; usable as a decorator."""
    if hook not in _hooks:
        _hooks.append(hook)
    return hook


def unregister_post_grant_hook(hook: PostGrantHook) -> None:
    if hook in _hooks:
        _hooks.remove(hook)


def clear_post_grant_hooks() -> None:
    _hooks.clear()


def _run_hook(hook: PostGrantHook, event: GrantEvent) -> None:
    try:
        hook(event)
    except Exception:
        logger.exception(
            "Post-grant hook %s failed for student %d (entry %d)",
            getattr(hook, "__name__", hook), event.student_id, event.entry_id,
        )


def dispatch_post_grant(event: GrantEvent) -> list[Future]:
    """Schedule every registered hook; returns the futures (tests wait on
    them, request paths ignore them)."""
    return [_executor.submit(_run_hook, hook, event) for hook in list(_hooks)]
