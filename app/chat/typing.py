"""
Typing indicators.

Typing state is ephemeral, so it lives in the Django cache rather than on
the Chat row:

- TypingIndicatorStore: one cache key per chat holding
  ``{user_id: started_at}``. Readers filter entries by age, so an entry
  whose expiry never fired is still not reported once the window passed.
- TypingTimer: per-connection one-shot asyncio tasks, one per
  (chat, user). Re-arming replaces the previous task. When a task fires it
  clears the entry only if its stamp is unchanged, so an explicit stop or a
  sent message turns it into a no-op.

The window is ``settings.CHAT_TYPING_TIMEOUT_SECONDS``.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache

from chat.constants import TYPING_CONFIG

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def typing_timeout() -> float:
    return float(settings.CHAT_TYPING_TIMEOUT_SECONDS)


class TypingIndicatorStore:
    """
    Cache-backed typing entries.

    Concurrent writers to the same chat key are last-write-wins; an entry
    lost that way reappears on the user's next keystroke.
    """

    @staticmethod
    def _key(chat_id) -> str:
        return f"{TYPING_CONFIG.KEY_PREFIX}:{chat_id}"

    @classmethod
    def _load(cls, chat_id) -> dict[str, float]:
        return cache.get(cls._key(chat_id)) or {}

    @classmethod
    def _save(cls, chat_id, entries: dict[str, float]) -> None:
        if entries:
            cache.set(cls._key(chat_id), entries, timeout=math.ceil(typing_timeout()) + 1)
        else:
            cache.delete(cls._key(chat_id))

    @classmethod
    def start(cls, chat_id, user_id) -> float:
        """Stamp ``user_id`` as typing in the chat and return the stamp."""
        stamp = time.time()
        entries = cls._load(chat_id)
        entries[str(user_id)] = stamp
        cls._save(chat_id, entries)
        return stamp

    @classmethod
    def stop(cls, chat_id, user_id, stamp: float | None = None) -> bool:
        """
        Remove the user's entry.

        Args:
            stamp: Only remove the entry if it still carries this stamp

        Returns:
            True if an entry was removed
        """
        entries = cls._load(chat_id)
        key = str(user_id)
        if key not in entries:
            return False
        if stamp is not None and entries[key] != stamp:
            return False
        del entries[key]
        cls._save(chat_id, entries)
        return True

    @classmethod
    def stamp_of(cls, chat_id, user_id) -> float | None:
        return cls._load(chat_id).get(str(user_id))

    @classmethod
    def active_typers(cls, chat_id, exclude=None) -> list[str]:
        """User ids typing in the chat within the window, oldest first."""
        cutoff = time.time() - typing_timeout()
        entries = cls._load(chat_id)
        active = sorted(
            (started, user_id)
            for user_id, started in entries.items()
            if started > cutoff and user_id != (str(exclude) if exclude else None)
        )
        return [user_id for _, user_id in active]


class TypingTimer:
    """
    Deadlines for one connection's typing indicators.

    ``on_expire(chat_id, user_id, stamp)`` is awaited when a deadline passes
    without being re-armed or cancelled. Failures in it are logged and
    swallowed.

    Usage:
        timer = TypingTimer(self._expire_typing)
        timer.arm(chat_id, user_id, stamp)
        ...
        pending = timer.drain()  # on disconnect
    """

    def __init__(
        self,
        on_expire: Callable[[str, str, float], Awaitable[None]],
        timeout: float | None = None,
    ):
        self.on_expire = on_expire
        self.timeout = typing_timeout() if timeout is None else timeout
        self._tasks: dict[tuple[str, str], asyncio.Task] = {}
        self._stamps: dict[tuple[str, str], float] = {}

    def arm(self, chat_id, user_id, stamp: float) -> None:
        """Schedule expiry for (chat, user), replacing any pending deadline."""
        key = (str(chat_id), str(user_id))
        self.cancel(*key)
        self._stamps[key] = stamp
        self._tasks[key] = asyncio.ensure_future(self._run(key, stamp))

    def cancel(self, chat_id, user_id) -> bool:
        """Drop the pending deadline, if any. Returns True if one was pending."""
        key = (str(chat_id), str(user_id))
        self._stamps.pop(key, None)
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._stamps.clear()

    def drain(self) -> list[tuple[str, str, float]]:
        """
        Cancel every pending deadline and return it as (chat_id, user_id, stamp).

        Used when the connection closes before its deadlines pass; the caller
        expires the returned entries itself.
        """
        pending = [
            (chat_id, user_id, stamp) for (chat_id, user_id), stamp in self._stamps.items()
        ]
        self.cancel_all()
        return pending

    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, key: tuple[str, str], stamp: float) -> None:
        await asyncio.sleep(self.timeout)
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
            self._stamps.pop(key, None)
        try:
            await self.on_expire(key[0], key[1], stamp)
        except Exception:
            logger.exception(f"Typing expiry failed for user {key[1]} in chat {key[0]}")
