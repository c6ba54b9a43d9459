"""MixDrop family: packed JS → MDCore.wurl / MDCore.vsrc → direct MP4."""
from __future__ import annotations
import asyncio
import re
from urllib.parse import urlparse

from .. import unpacker
from ..errors import DeobfuscationError
from ..fetcher import DEFAULT_UA, Fetcher
from ..resolver import register_host

HOST_RE = re.compile(r"(?:^|\.)(?:mixdrop\d*|mixdrp|mixdroop|m1xdrop|mxdrop)\.[a-z]{2,}$", re.I)

# Direct-URL fields first, generic player config last
URL_PATTERNS = (
    re.compile(r'MDCore\.wurl\s*=\s*"([^"]+)"'),
    re.compile(r'MDCore\.vsrc\s*=\s*"([^"]+)"'),
    re.compile(r'(?:file|src)\s*[:=]\s*"((?:https?:)?//[^"]+)"'),
)


def extract_media_url(unpacked: str) -> str:
    for pattern in URL_PATTERNS:
        m = pattern.search(unpacked)
        if m:
            url = m.group(1)
            return f"https:{url}" if url.startswith("//") else url
    raise DeobfuscationError("no media URL in unpacked player script")


@register_host
class MixDrop:
    id = "mixdrop"
    name = "MixDrop"

    def matches(self, url: str) -> bool:
        return bool(HOST_RE.search(urlparse(url).hostname or ""))

    async def resolve(self, url: str, fetcher: Fetcher, *, cancel: asyncio.Event | None = None) -> str:
        parsed = urlparse(url)
        html = await fetcher.get(
            url,
            headers={"User-Agent": DEFAULT_UA, "Referer": f"{parsed.scheme}://{parsed.netloc}/"},
            cancel=cancel,
        )
        return extract_media_url(unpacker.unpack(html))
