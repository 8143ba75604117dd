"""Identity providers: who is acting when a change is saved.

The REST layer binds the caller's actor for the duration of each request
with ``bind_actor``; ContextIdentityProvider reads it back.  Because the
binding lives in a ContextVar it follows asyncio tasks and never leaks
between concurrent requests.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Protocol

from statehistory.models.entries import Actor

_current_actor: ContextVar[Actor | None] = ContextVar("statehistory_actor", default=None)


class IdentityProvider(Protocol):
    def current_actor(self) -> Actor | None:
        """Return the actor bound to the current context, or None."""
        ...


class ContextIdentityProvider:
    """Reads the actor bound by ``bind_actor`` in the current context."""

    def current_actor(self) -> Actor | None:
        return _current_actor.get()


class StaticIdentityProvider:
    """Always reports the same actor (or always none)."""

    def __init__(self, actor: Actor | None) -> None:
        self._actor = actor

    def current_actor(self) -> Actor | None:
        return self._actor


@contextmanager
def bind_actor(actor: Actor | None) -> Iterator[Actor | None]:
    """Bind *actor* to the current context until the block exits."""
    token = _current_actor.set(actor)
    try:
        yield actor
    finally:
        _current_actor.reset(token)
