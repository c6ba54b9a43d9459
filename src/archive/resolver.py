"""
Embed resolver: watch page → playable media URL.

    Fetching → NotFound
             → Found                       (plain iframe / <video> / data-* URL)
             → Obfuscated → Unpacking → Found | raw embed URL

Obfuscated host families register themselves with @register_host and are
imported at the bottom of this module.
"""
from __future__ import annotations
import asyncio
import logging
import re
from dataclasses import replace
from typing import Optional

from bs4 import BeautifulSoup

from . import config
from .base import EmbedResult, MediaRecord
from .errors import DeobfuscationError, FetchCancelled, TransportError
from .extractor import absolute_url, first_match, soupify
from .fetcher import DEFAULT_UA, Fetcher

log = logging.getLogger("camarchive.resolver")

WATCH_HEADERS = {
    "User-Agent": DEFAULT_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

IFRAME_SRC_RE = re.compile(r"embed|video|player|/e/", re.I)
DATA_URL_ATTRS = ("data-embed", "data-src", "data-url")
HIDDEN_THUMB_INPUTS = ("poster", "thumbnail", "thumb")


# ──────────────────────────────
#  Obfuscated host registry
# ──────────────────────────────
class _ObfuscatedHost:
    id: str
    name: str

    def matches(self, url: str) -> bool:
        raise NotImplementedError

    async def resolve(self, url: str, fetcher: Fetcher, *, cancel: asyncio.Event | None = None) -> str:
        raise NotImplementedError


_HOSTS: list[_ObfuscatedHost] = []


def register_host(host):
    """Decorator to register an obfuscated host family."""
    global _HOSTS
    _HOSTS = [h for h in _HOSTS if h.id != host.id]
    _HOSTS.append(host())
    return host


def host_for(url: str) -> Optional[_ObfuscatedHost]:
    return next((h for h in _HOSTS if h.matches(url)), None)


# ──────────────────────────────
#  Embed discovery strategies
# ──────────────────────────────
def _embed_from_iframe(soup: BeautifulSoup, origin: str) -> Optional[str]:
    for iframe in soup.find_all("iframe", src=True):
        src = iframe["src"].strip()
        if src and IFRAME_SRC_RE.search(src):
            return absolute_url(src, origin)
    return None


def _embed_from_video(soup: BeautifulSoup, origin: str) -> Optional[str]:
    video = soup.find("video")
    if video is None:
        return None
    source = video.find("source", src=True)
    src = (source["src"] if source else video.get("src") or "").strip()
    return absolute_url(src, origin) if src else None


def _embed_from_data_attrs(soup: BeautifulSoup, origin: str) -> Optional[str]:
    for el in soup.select(", ".join(f"[{attr}]" for attr in DATA_URL_ATTRS)):
        for attr in DATA_URL_ATTRS:
            value = (el.get(attr) or "").strip()
            if value.startswith(("http://", "https://", "//")):
                return absolute_url(value, origin)
    return None


EMBED_STRATEGIES = (_embed_from_iframe, _embed_from_video, _embed_from_data_attrs)


def _thumb_from_og(soup: BeautifulSoup) -> Optional[str]:
    meta = soup.find("meta", attrs={"property": "og:image"})
    return (meta.get("content") or "").strip() if meta else None


def _thumb_from_hidden_input(soup: BeautifulSoup) -> Optional[str]:
    for name in HIDDEN_THUMB_INPUTS:
        el = soup.find("input", attrs={"name": name})
        if el is not None and (el.get("value") or "").strip():
            return el["value"].strip()
    return None


THUMBNAIL_STRATEGIES = (_thumb_from_og, _thumb_from_hidden_input)


def find_embed(markup: str | BeautifulSoup, origin: str = config.ARCHIVE_ORIGIN) -> str:
    soup = markup if isinstance(markup, BeautifulSoup) else soupify(markup)
    return first_match(EMBED_STRATEGIES, soup, origin) or ""


def find_thumbnail(markup: str | BeautifulSoup) -> str:
    soup = markup if isinstance(markup, BeautifulSoup) else soupify(markup)
    return first_match(THUMBNAIL_STRATEGIES, soup) or ""


# ──────────────────────────────
#  Resolver
# ──────────────────────────────
class EmbedResolver:
    def __init__(
        self,
        *,
        fetcher: Optional[Fetcher] = None,
        origin: str = config.ARCHIVE_ORIGIN,
        timeout: float = config.TIMEOUT,
    ):
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(timeout=timeout)
        self.origin = origin

    async def close(self):
        if self._owns_fetcher:
            await self.fetcher.close()

    async def resolve_embed(self, page_url: str, *, cancel: asyncio.Event | None = None) -> EmbedResult:
        """Playable URL + poster for a watch page. Never raises."""
        try:
            return await self._resolve(page_url, cancel)
        except FetchCancelled:
            log.info(f"embed resolution cancelled: {page_url}")
            return EmbedResult(error="cancelled")
        except TransportError as e:
            log.warning(f"watch page fetch failed: {e}")
            return EmbedResult(error="transport")
        except Exception:
            log.exception(f"embed resolution crashed: {page_url}")
            return EmbedResult(error="error")

    async def _resolve(self, page_url: str, cancel: asyncio.Event | None) -> EmbedResult:
        url = absolute_url(page_url, self.origin)
        html = await self.fetcher.get(url, headers=dict(WATCH_HEADERS), cancel=cancel)
        soup = soupify(html)

        thumbnail = find_thumbnail(soup)
        embed = find_embed(soup, self.origin)
        if not embed:
            log.info(f"no embed found on {url}")
            return EmbedResult(thumbnail_url=thumbnail, error="not_found")

        host = host_for(embed)
        if host is None:
            log.info(f"embed found: {embed}")
            return EmbedResult(embed_url=embed, thumbnail_url=thumbnail)

        try:
            direct = await host.resolve(embed, self.fetcher, cancel=cancel)
        except FetchCancelled:
            raise
        except (DeobfuscationError, TransportError) as e:
            log.warning(f"[{host.id}] could not unpack {embed}, using raw embed: {e}")
            return EmbedResult(embed_url=embed, thumbnail_url=thumbnail)

        log.info(f"[{host.id}] resolved {embed} -> {direct}")
        return EmbedResult(embed_url=direct, thumbnail_url=thumbnail)

    async def attach(self, record: MediaRecord, *, cancel: asyncio.Event | None = None) -> MediaRecord:
        """Copy of `record` with its embed URL (and a missing thumbnail) filled in."""
        result = await self.resolve_embed(record.page_url, cancel=cancel)
        updated = record.with_embed(result.embed_url)
        if not updated.thumbnail_url and result.thumbnail_url:
            updated = replace(updated, thumbnail_url=result.thumbnail_url)
        return updated


# ──────────────────────────────
#  Import host families to register them
# ──────────────────────────────
def _load_hosts():
    from .hosts import mixdrop      # noqa: F401

_load_hosts()
