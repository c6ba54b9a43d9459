"""
HTTP fetcher for the archive client. Wraps aiohttp with common defaults,
headers, timeout, cancellation and optional proxy support.
"""
from __future__ import annotations
import aiohttp
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional

from . import config
from .errors import FetchCancelled, TransportError

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class FetchResponse:
    status: int
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    set_cookies: list[str] = field(default_factory=list)   # every Set-Cookie occurrence
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text)


async def wait_cancellable(aw: Awaitable, cancel: Optional[asyncio.Event]):
    """Await `aw`, abandoning it with FetchCancelled if `cancel` fires first."""
    if cancel is None:
        return await aw
    if cancel.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise FetchCancelled("cancelled before start")

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()
    task.cancel()
    raise FetchCancelled("cancelled")


class Fetcher:
    def __init__(self, *, timeout: float = config.TIMEOUT, proxy: str | None = config.PROXY):
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=min(timeout, 5))
        self.proxy = proxy
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"User-Agent": DEFAULT_UA},
                connector=aiohttp.TCPConnector(ssl=False),
                # cookies are tracked per subject by SessionStore, not by aiohttp
                cookie_jar=aiohttp.DummyCookieJar(),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    # ── core request ──────────────────

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: dict | None = None,
        json_body: Any = None,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> FetchResponse:
        """Issue one request. Statuses are returned, never raised."""
        session = await self._get_session()
        extra = {"timeout": aiohttp.ClientTimeout(total=timeout)} if timeout else {}

        async def _do() -> FetchResponse:
            async with session.request(
                method,
                url,
                headers=headers or {},
                json=json_body,
                proxy=self.proxy,
                **extra,
            ) as resp:
                text = await resp.text(errors="replace")
                return FetchResponse(
                    status=resp.status,
                    text=text,
                    headers=dict(resp.headers),
                    set_cookies=list(resp.headers.getall("Set-Cookie", [])),
                    url=str(resp.url),
                )

        try:
            return await wait_cancellable(_do(), cancel)
        except asyncio.TimeoutError as e:
            raise TransportError(f"timeout fetching {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{type(e).__name__} fetching {url}: {e}") from e

    # ── convenience methods ──────────────────

    async def get(
        self,
        url: str,
        *,
        headers: dict | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """GET and return the body; non-2xx raises TransportError."""
        resp = await self.fetch(url, headers=headers, cancel=cancel)
        if not resp.ok:
            raise TransportError(f"HTTP {resp.status} for {url}", status=resp.status)
        return resp.text

    async def post(
        self,
        url: str,
        *,
        headers: dict | None = None,
        json_body: Any = None,
        cancel: asyncio.Event | None = None,
    ) -> FetchResponse:
        return await self.fetch(
            url, method="POST", headers=headers, json_body=json_body, cancel=cancel,
        )
