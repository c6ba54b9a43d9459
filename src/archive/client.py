"""
Paginated archive client.

Usage:
    client = ArchiveClient()
    page = await client.get_page("alice", 2)
    print(page.to_dict())
    await client.close()

Page 1 comes straight off the landing page. Later pages replay the
site's Livewire call (`load_profile_videos`) with the captured
fingerprint/serverMemo, rewriting only the page-number fields.
"""
from __future__ import annotations
import asyncio
import logging
import math
import random
import string
from typing import Any, Optional
from urllib.parse import unquote

from . import config
from .base import MediaRecord, PageResult, Session
from .errors import ArchiveError, FetchCancelled, ProtocolError, TransportError
from .extractor import extract_records, extract_total
from .fetcher import Fetcher, wait_cancellable
from .initializer import BROWSER_UA, SessionInitializer, landing_url
from .session import XSRF_COOKIE, XSRF_HEADER, SessionStore, cookie_header, parse_set_cookies

log = logging.getLogger("camarchive.client")

PROTOCOL_HEADERS = {
    "User-Agent": BROWSER_UA,
    "Accept": "text/html, application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
    "Content-Type": "application/json",
    "X-Livewire": "true",
    "Connection": "keep-alive",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "Priority": "u=0",
}


def _correlation_id() -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=5))


def set_page_fields(server_memo: Any, page: int) -> None:
    """Point the pager fields a (cloned) serverMemo already has at `page`. No keys are added."""
    data = server_memo.get("data") if isinstance(server_memo, dict) else None
    if not isinstance(data, dict):
        return
    for key in ("page", "currentPage"):
        if key in data:
            data[key] = page
    paginators = data.get("paginators")
    if isinstance(paginators, dict) and "page" in paginators:
        paginators["page"] = page


class ArchiveClient:
    def __init__(
        self,
        *,
        fetcher: Optional[Fetcher] = None,
        origin: str = config.ARCHIVE_ORIGIN,
        page_size: int = config.PAGE_SIZE,
        max_retries: int = config.MAX_RETRIES,
        retry_backoff: float = config.RETRY_BACKOFF,
        jitter_max: float = config.JITTER_MAX,
        timeout: float = config.TIMEOUT,
    ):
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(timeout=timeout)
        self.origin = origin
        self.page_size = page_size
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.initializer = SessionInitializer(self.fetcher, origin=origin, jitter_max=jitter_max)
        self.store = SessionStore(self.initializer.initialize)

    async def close(self):
        if self._owns_fetcher:
            await self.fetcher.close()

    async def __aenter__(self) -> "ArchiveClient":
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ── public ──────────────────

    async def get_page(self, subject: str, page: int = 1, *, cancel: asyncio.Event | None = None) -> PageResult:
        """Page `page` of `subject`'s archive. Never raises; failures give an empty page."""
        if page < 1:
            return PageResult.empty(subject, page, "bad_page")
        try:
            return await self._get_page(subject, page, cancel, 0)
        except FetchCancelled:
            log.info(f"[{subject}] page {page} cancelled")
            return PageResult.empty(subject, page, "cancelled")
        except ProtocolError as e:
            log.warning(f"[{subject}] page {page} gave up after {self.max_retries} retries: HTTP {e.status}")
            return PageResult.empty(subject, page, "protocol")
        except ArchiveError as e:
            log.warning(f"[{subject}] page {page} failed: {e}")
            return PageResult.empty(subject, page, "error")
        except Exception:
            log.exception(f"[{subject}] page {page} crashed")
            return PageResult.empty(subject, page, "error")

    # ── internals ──────────────────

    async def _get_page(self, subject: str, page: int, cancel: asyncio.Event | None, retry: int) -> PageResult:
        init = None
        if page == 1:
            init = await self.store.initialize(subject, cancel=cancel)
            if init.success and init.records:
                log.info(f"[{subject}] page 1 served from landing page ({len(init.records)} records)")
                return self._page(subject, 1, init.records, init.total_records)

        session = self.store.get(subject)
        if session is None:
            if init is None:
                init = await self.store.initialize(subject, cancel=cancel)
            if init.error == "cancelled":
                raise FetchCancelled("initialization cancelled")
            session = self.store.get(subject) or init.session
            if session is None:
                log.warning(f"[{subject}] no session ({init.error})")
                return PageResult.empty(subject, page, init.error or "init_failed")

        if not session.protocol_capable:
            log.warning(f"[{subject}] landing page had no listing component; cannot paginate")
            return PageResult.empty(subject, page, "no_protocol")

        try:
            resp = await self.fetcher.post(
                self._endpoint(session),
                headers=self._headers(session),
                json_body=self._payload(session, page),
                cancel=cancel,
            )
        except FetchCancelled:
            raise
        except TransportError as e:
            log.warning(f"[{subject}] page {page} request failed: {e}")
            return PageResult.empty(subject, page, "transport")

        if resp.status in config.RETRYABLE_STATUSES:
            if retry >= self.max_retries:
                raise ProtocolError(f"HTTP {resp.status}", status=resp.status)
            log.warning(f"[{subject}] page {page} got HTTP {resp.status}, retry {retry + 1}/{self.max_retries}")
            await self.store.invalidate(subject)
            await wait_cancellable(asyncio.sleep(self.retry_backoff), cancel)
            return await self._get_page(subject, page, cancel, retry + 1)

        if not resp.ok:
            log.warning(f"[{subject}] page {page} HTTP {resp.status}: {resp.text[:200]}")
            return PageResult.empty(subject, page, f"http_{resp.status}")

        await self.store.merge_cookies(subject, parse_set_cookies(resp.set_cookies))

        fragment = self._fragment(resp)
        if not fragment:
            log.warning(f"[{subject}] page {page} response has no effects.html")
            return PageResult.empty(subject, page, "no_fragment")

        records = extract_records(fragment, subject=subject, origin=self.origin)
        result = self._page(subject, page, records, extract_total(fragment))
        log.info(f"[{subject}] page {page}/{result.total_pages}: {len(records)} records")
        return result

    def _endpoint(self, session: Session) -> str:
        return f"{self.origin}/livewire/message/{session.component_name}"

    def _payload(self, session: Session, page: int) -> dict:
        fingerprint, server_memo = session.protocol_state()
        if page > 1:
            set_page_fields(server_memo, page)
        return {
            "fingerprint": fingerprint,
            "serverMemo": server_memo,
            "updates": [
                {
                    "type": "callMethod",
                    "payload": {"id": _correlation_id(), "method": config.LOAD_METHOD, "params": []},
                }
            ],
        }

    def _headers(self, session: Session) -> dict[str, str]:
        headers = dict(PROTOCOL_HEADERS)
        headers["X-CSRF-TOKEN"] = session.csrf_token
        headers["Origin"] = self.origin
        headers["Referer"] = landing_url(session.subject, self.origin)
        if session.cookies:
            headers["Cookie"] = cookie_header(session.cookies)
        xsrf = session.cookies.get(XSRF_COOKIE)
        if xsrf:
            headers[XSRF_HEADER] = unquote(xsrf)
        return headers

    @staticmethod
    def _fragment(resp) -> str:
        try:
            data = resp.json()
        except ValueError:
            return ""
        effects = data.get("effects") if isinstance(data, dict) else None
        html = effects.get("html") if isinstance(effects, dict) else None
        return html if isinstance(html, str) else ""

    def _page(self, subject: str, page: int, records: list[MediaRecord], total: Optional[int]) -> PageResult:
        if total is not None:
            total_pages = max(1, math.ceil(total / self.page_size))
        elif len(records) >= self.page_size:
            total_pages = page + 1
        else:
            total_pages = page
        return PageResult(subject=subject, records=records, current_page=page, total_pages=total_pages)
