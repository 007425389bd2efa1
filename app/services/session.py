"""Explicit notifications about who is signed in."""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Callable

from ..errors import PreconditionError
from ..models import UserProfile

logger = logging.getLogger(__name__)

SessionCallback = Callable[[UserProfile | None], None]


class Subscription:
    """Handle returned by :meth:`SessionWatcher.subscribe`."""

    def __init__(self, watcher: "SessionWatcher", callback: SessionCallback):
        self._watcher = watcher
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving notifications; calling it twice is harmless."""

        if self._active:
            self._active = False
            self._watcher._unsubscribe(self._callback)


class SessionWatcher:
    """Tracks the signed-in user and tells subscribers when it changes."""

    def __init__(self, user: UserProfile | None = None):
        self._current = user
        self._callbacks: list[SessionCallback] = []

    @property
    def current(self) -> UserProfile | None:
        return self._current

    def subscribe(self, callback: SessionCallback) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(self, callback)

    def set_user(self, user: UserProfile | None) -> None:
        """Record a sign-in (a profile) or a sign-out (``None``)."""

        previous = self._current.user_id if self._current else None
        incoming = user.user_id if user else None
        self._current = user
        if previous == incoming:
            return
        logger.info("Session user changed from %s to %s", previous, incoming)
        for callback in list(self._callbacks):
            callback(user)

    def require_user(self) -> UserProfile:
        """Return the signed-in user or raise ``PreconditionError``."""

        if self._current is None:
            raise PreconditionError("No authenticated user")
        return self._current

    def _unsubscribe(self, callback: SessionCallback) -> None:
        with suppress(ValueError):
            self._callbacks.remove(callback)
