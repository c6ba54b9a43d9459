"""
Session initializer.

One GET of `{origin}/profile/{subject}` yields everything we need:
cookies, the CSRF meta token, the Livewire descriptor of the listing
component, and, as a bonus, the first page of cards.
"""
from __future__ import annotations
import asyncio
import logging
import random
from typing import Optional

from . import config
from .base import InitResult, Session
from .errors import FetchCancelled, TransportError
from .extractor import (
    extract_csrf_token, extract_records, extract_total, find_listing_component, soupify,
)
from .fetcher import Fetcher
from .session import parse_set_cookies

log = logging.getLogger("camarchive.initializer")

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:147.0) Gecko/20100101 Firefox/147.0"

BROWSER_HEADERS = {
    "User-Agent": BROWSER_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
}


def landing_url(subject: str, origin: str = config.ARCHIVE_ORIGIN) -> str:
    return f"{origin}/profile/{subject}"


class SessionInitializer:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        origin: str = config.ARCHIVE_ORIGIN,
        jitter_max: float = config.JITTER_MAX,
    ):
        self.fetcher = fetcher
        self.origin = origin
        self.jitter_max = jitter_max

    async def initialize(
        self,
        subject: str,
        fallback_cookies: Optional[dict[str, str]] = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> InitResult:
        """Never raises for network trouble; check `.success`."""
        if self.jitter_max > 0:
            await asyncio.sleep(random.uniform(0, self.jitter_max))

        url = landing_url(subject, self.origin)
        log.info(f"[{subject}] initializing session from {url}")
        try:
            resp = await self.fetcher.fetch(url, headers=dict(BROWSER_HEADERS), cancel=cancel)
        except FetchCancelled:
            log.info(f"[{subject}] initialization cancelled")
            return InitResult(success=False, error="cancelled")
        except TransportError as e:
            log.warning(f"[{subject}] landing page fetch failed: {e}")
            return InitResult(success=False, error="transport")

        if not resp.ok:
            log.warning(f"[{subject}] landing page status {resp.status}")
            return InitResult(success=False, error=f"http_{resp.status}")

        cookies = dict(fallback_cookies or {})
        cookies.update(parse_set_cookies(resp.set_cookies))

        soup = soupify(resp.text)
        csrf = extract_csrf_token(soup)
        records = extract_records(soup, subject=subject, origin=self.origin)

        protocol = {}
        component = find_listing_component(soup)
        if component and component.get("serverMemo") is not None:
            protocol = {
                "fingerprint": component["fingerprint"],
                "server_memo": component["serverMemo"],
                "component_name": component["name"],
            }
        session = Session(subject=subject, csrf_token=csrf, cookies=cookies, **protocol)

        total = extract_total(resp.text, soup=soup)
        log.info(
            f"[{subject}] csrf={bool(csrf)} cookies={len(cookies)} "
            f"protocol={session.protocol_capable} records={len(records)} total={total}"
        )

        if not (session.protocol_capable or records):
            return InitResult(success=False, error="no_content")

        return InitResult(success=True, session=session, records=records, total_records=total)
