"""
HTML extraction for archive listing pages and fragments.

Everything here is pure: HTML text in, records / tokens / counts out.
Each field is pulled by an ordered list of small strategies; the first
non-empty answer wins.
"""
from __future__ import annotations
import html as html_lib
import json
import logging
import re
from typing import Callable, Iterable, Optional, TypeVar
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from . import config
from .base import MediaRecord
from .errors import ExtractionError

log = logging.getLogger("camarchive.extractor")

T = TypeVar("T")

# Two markup variants of the same card: the profile page and the Livewire fragment
CARD_SELECTORS = ("section.video_item", "div.video_item", "div.video-card")
WATCH_MARKER = "/watch/"
THUMB_ATTRS = ("poster", "src", "data-src")

DATE_RE = re.compile(r"(\d+\s+\w+\s+ago)")
VIEWS_RE = re.compile(r"(\d[\d,.]*[KkMm]?)\s+views", re.I)

# "Showing 1 to 20 of 25", "total":25, "count":25
OF_TOTAL_RE = re.compile(r"\bof\s+(\d[\d,]*)\b", re.I)
TOTAL_FIELD_RE = re.compile(r'(?:"|&quot;)total(?:"|&quot;)\s*:\s*(?:"|&quot;)?(\d+)')
COUNT_FIELD_RE = re.compile(r'(?:"|&quot;)count(?:"|&quot;)\s*:\s*(?:"|&quot;)?(\d+)')

LISTING_COMPONENT_RE = re.compile(rf"^{re.escape(config.LISTING_COMPONENT)}$")
DESCRIPTOR_ATTR = "wire:initial-data"
WIRE_ID_ATTR = "wire:id"


def soupify(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html.parser")


def first_match(strategies: Iterable[Callable[..., Optional[T]]], *args) -> Optional[T]:
    """Run strategies in order, return the first non-empty result."""
    for strategy in strategies:
        value = strategy(*args)
        if value:
            return value
    return None


def absolute_url(href: str, origin: str = config.ARCHIVE_ORIGIN) -> str:
    href = href.strip()
    if href.startswith("//"):
        return f"https:{href}"
    if urlparse(href).scheme:
        return href
    return f"{origin.rstrip('/')}/{href.lstrip('/')}"

# ──────────────────────────────
#  Card field strategies
# ──────────────────────────────
def _watch_anchor(card: Tag) -> Optional[Tag]:
    return card.select_one(f'a[href*="{WATCH_MARKER}"]')


def _thumb_from_video(card: Tag) -> Optional[str]:
    media = card.find("video")
    return _media_attr(media) if media else None


def _thumb_from_img(card: Tag) -> Optional[str]:
    media = card.find("img")
    return _media_attr(media) if media else None


def _media_attr(media: Tag) -> Optional[str]:
    for attr in THUMB_ATTRS:
        value = media.get(attr)
        if value and value.strip():
            return value.strip()
    return None


THUMBNAIL_STRATEGIES = (_thumb_from_video, _thumb_from_img)


def _duration(card: Tag) -> Optional[str]:
    el = card.select_one(".duration")
    if el is None:
        return None
    # The duration badge carries an inline SVG icon; the time is the last line.
    lines = [line.strip() for line in el.get_text().split("\n") if line.strip()]
    return lines[-1] if lines else None


def _info_from_paragraph(card: Tag) -> Optional[str]:
    el = card.select_one(".info p")
    return el.get_text(" ", strip=True) if el else None


def _info_from_block(card: Tag) -> Optional[str]:
    el = card.select_one(".info")
    return el.get_text(" ", strip=True) if el else None


INFO_STRATEGIES = (_info_from_paragraph, _info_from_block)


def _title(card: Tag, anchor: Tag, subject: str) -> str:
    for el, attr in ((anchor, "title"), (card.find("img"), "alt"), (card.find("video"), "title")):
        if el is not None and el.get(attr, "").strip():
            return el[attr].strip()
    return f"{subject} archive video" if subject else "archive video"


def _record_id(page_url: str) -> str:
    path = urlparse(page_url).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


def parse_card(card: Tag, *, subject: str = "", origin: str = config.ARCHIVE_ORIGIN) -> MediaRecord:
    """Build one record; raises ExtractionError when the watch link is missing."""
    anchor = _watch_anchor(card)
    href = anchor.get("href", "").strip() if anchor else ""
    if not href:
        raise ExtractionError("card has no watch link")

    page_url = absolute_url(href, origin)
    info = first_match(INFO_STRATEGIES, card) or ""
    date_m = DATE_RE.search(info)
    views_m = VIEWS_RE.search(info)

    return MediaRecord(
        id=_record_id(page_url),
        title=_title(card, anchor, subject),
        thumbnail_url=first_match(THUMBNAIL_STRATEGIES, card) or "",
        page_url=page_url,
        duration=_duration(card),
        view_count=views_m.group(1) if views_m else None,
        relative_date=date_m.group(1) if date_m else None,
    )


def extract_records(markup: str | BeautifulSoup, *, subject: str = "", origin: str = config.ARCHIVE_ORIGIN) -> list[MediaRecord]:
    """All cards in document order. Malformed cards are skipped, never raised."""
    soup = markup if isinstance(markup, BeautifulSoup) else soupify(markup)
    records: list[MediaRecord] = []
    for idx, card in enumerate(soup.select(", ".join(CARD_SELECTORS))):
        try:
            records.append(parse_card(card, subject=subject, origin=origin))
        except ExtractionError as e:
            log.debug(f"[{subject}] skipping card {idx}: {e}")
        except Exception as e:
            log.warning(f"[{subject}] malformed card {idx}: {type(e).__name__}: {e}")
    return records

# ──────────────────────────────
#  Totals
# ──────────────────────────────
def _to_int(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw.replace(",", ""))
    except ValueError:
        return None


def _total_from_of(text: str, raw: str) -> Optional[int]:
    m = OF_TOTAL_RE.search(text)
    return _to_int(m.group(1)) if m else None


def _total_from_total_field(text: str, raw: str) -> Optional[int]:
    m = TOTAL_FIELD_RE.search(raw)
    return _to_int(m.group(1)) if m else None


def _total_from_count_field(text: str, raw: str) -> Optional[int]:
    m = COUNT_FIELD_RE.search(raw)
    return _to_int(m.group(1)) if m else None


TOTAL_STRATEGIES = (_total_from_of, _total_from_total_field, _total_from_count_field)


def extract_total(markup: str, *, soup: Optional[BeautifulSoup] = None) -> Optional[int]:
    """Total record count advertised by the page, or None."""
    text = (soup or soupify(markup)).get_text(" ", strip=True)
    return first_match(TOTAL_STRATEGIES, text, markup or "")

# ──────────────────────────────
#  Landing-page protocol bits
# ──────────────────────────────
def extract_csrf_token(soup: BeautifulSoup) -> str:
    meta = soup.find("meta", attrs={"name": "csrf-token"})
    return (meta.get("content") or "").strip() if meta else ""


def _decode_descriptor(raw: str) -> Optional[dict]:
    # html.parser already resolves entities; unescape again only for double-escaped markup.
    try:
        data = json.loads(raw)
    except ValueError:
        try:
            data = json.loads(html_lib.unescape(raw))
        except ValueError:
            return None
    return data if isinstance(data, dict) else None


def find_listing_component(soup: BeautifulSoup, name_re: re.Pattern = LISTING_COMPONENT_RE) -> Optional[dict]:
    """
    The Livewire descriptor of the listing component, as
    {"fingerprint": ..., "serverMemo": ..., "name": ...}, or None.
    """
    for el in soup.find_all(attrs={DESCRIPTOR_ATTR: True}):
        data = _decode_descriptor(el.get(DESCRIPTOR_ATTR, ""))
        if not data:
            continue
        fingerprint = data.get("fingerprint")
        if not isinstance(fingerprint, dict):
            continue
        name = fingerprint.get("name")
        if not isinstance(name, str) or not name_re.search(name):
            continue
        if not fingerprint.get("id"):
            wire_id = el.get(WIRE_ID_ATTR) or _any_wire_id(soup)
            if wire_id:
                fingerprint["id"] = wire_id
        return {"name": name, "fingerprint": fingerprint, "serverMemo": data.get("serverMemo")}
    return None


def _any_wire_id(soup: BeautifulSoup) -> Optional[str]:
    el = soup.find("section", attrs={WIRE_ID_ATTR: True})
    return el.get(WIRE_ID_ATTR) if el else None
