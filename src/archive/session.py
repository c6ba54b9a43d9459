"""
SessionStore: one Session per subject, with coalesced initialization.

Concurrent `initialize(subject)` calls during one burst share a single
underlying initializer run (and therefore a single landing-page fetch).
"""
from __future__ import annotations
import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

from .base import InitResult, Session
from .errors import FetchCancelled
from .fetcher import wait_cancellable

log = logging.getLogger("camarchive.session")

_SET_COOKIE_RE = re.compile(r"^\s*([^=;\s]+)=([^;]*)")

XSRF_COOKIE = "XSRF-TOKEN"
XSRF_HEADER = "X-XSRF-TOKEN"


def parse_set_cookies(headers: list[str]) -> dict[str, str]:
    """name -> value from raw Set-Cookie header values; later ones win."""
    cookies: dict[str, str] = {}
    for header in headers:
        m = _SET_COOKIE_RE.match(header)
        if m:
            cookies[m.group(1)] = m.group(2)
    return cookies


def cookie_header(cookies: dict[str, str]) -> str:
    parts = []
    for name, value in cookies.items():
        # the XSRF cookie value is stored raw; the browser sends it percent-encoded
        if name == XSRF_COOKIE and "%" not in value:
            value = quote(value, safe="")
        parts.append(f"{name}={value}")
    return "; ".join(parts)


# (subject, fallback cookies) -> InitResult
Initializer = Callable[[str, dict[str, str]], Awaitable[InitResult]]


class SessionStore:
    def __init__(self, initializer: Initializer):
        self._initializer = initializer
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        # First-contact cookies, refreshed from every successful landing page
        self.global_cookies: dict[str, str] = {}

    def get(self, subject: str) -> Optional[Session]:
        return self._sessions.get(subject)

    async def initialize(self, subject: str, *, cancel: asyncio.Event | None = None) -> InitResult:
        """Run (or join) the initialization for `subject`."""
        if cancel is not None and cancel.is_set():
            raise FetchCancelled("cancelled before start")
        async with self._lock:
            task = self._inflight.get(subject)
            if task is None:
                log.debug(f"[{subject}] starting initialization")
                task = asyncio.ensure_future(self._run(subject))
                self._inflight[subject] = task
            else:
                log.debug(f"[{subject}] joining in-flight initialization")
        # shield: one waiter giving up must not cancel the shared run
        return await wait_cancellable(asyncio.shield(task), cancel)

    async def _run(self, subject: str) -> InitResult:
        try:
            result = await self._initializer(subject, dict(self.global_cookies))
            if result.success and result.session is not None:
                async with self._lock:
                    self._sessions[subject] = result.session
                    self.global_cookies.update(result.session.cookies)
            return result
        finally:
            async with self._lock:
                self._inflight.pop(subject, None)

    async def invalidate(self, subject: str) -> None:
        async with self._lock:
            if self._sessions.pop(subject, None) is not None:
                log.info(f"[{subject}] session invalidated")

    async def merge_cookies(self, subject: str, cookies: dict[str, str]) -> Optional[Session]:
        """Merge new cookies into the stored session (additive). Returns the new copy."""
        if not cookies:
            return self._sessions.get(subject)
        async with self._lock:
            current = self._sessions.get(subject)
            if current is None:
                return None
            updated = current.with_cookies(cookies)
            self._sessions[subject] = updated
            return updated

    def put(self, session: Session) -> None:
        """Seed a session directly (restored state, tests)."""
        self._sessions[session.subject] = session
