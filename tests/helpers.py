"""Test doubles and HTML fixtures shared by the archive tests."""
from __future__ import annotations
import asyncio
import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from src.archive.errors import TransportError
from src.archive.fetcher import FetchResponse, wait_cancellable
from src.archive.unpacker import _base_encode

ORIGIN = "https://archivebate.com"


@dataclass
class Call:
    method: str
    url: str
    headers: dict = field(default_factory=dict)
    json_body: Any = None


class FakeFetcher:
    """Scripted stand-in for Fetcher. Routes map (METHOD, url) to a response,
    a list of responses (consumed in order, last one repeats), an exception,
    or a callable taking the Call."""

    def __init__(self, routes: Optional[dict] = None, *, delay: float = 0.0):
        self.routes = dict(routes or {})
        self.delay = delay
        self.calls: list[Call] = []

    def count(self, method: str, url: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c.method == method and (url is None or c.url == url))

    async def fetch(self, url, *, method="GET", headers=None, json_body=None,
                    timeout=None, cancel=None) -> FetchResponse:
        call = Call(method, url, dict(headers or {}), json_body)
        self.calls.append(call)
        await wait_cancellable(asyncio.sleep(self.delay), cancel)
        route = self.routes.get((method, url))
        if route is None:
            return FetchResponse(status=404, text="not found")
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            route = route(call)
        return route

    async def get(self, url, *, headers=None, cancel=None) -> str:
        resp = await self.fetch(url, headers=headers, cancel=cancel)
        if not resp.ok:
            raise TransportError(f"HTTP {resp.status} for {url}", status=resp.status)
        return resp.text

    async def post(self, url, *, headers=None, json_body=None, cancel=None):
        return await self.fetch(url, method="POST", headers=headers, json_body=json_body, cancel=cancel)

    async def close(self):
        pass


# ──────────────────────────────
#  HTML fixtures
# ──────────────────────────────
def card(video_id: str, *, href: Optional[str] = None, duration: Optional[str] = "12:34",
         info: str = "3 days ago 120 views", poster: Optional[str] = None) -> str:
    href = href if href is not None else f"/watch/{video_id}"
    poster = poster if poster is not None else f"https://cdn.example/{video_id}.jpg"
    anchor = f'<a href="{href}">' if href else "<a>"
    dur = f'<div class="duration"><svg><path d="M0"/></svg>\n   {duration}\n</div>' if duration else ""
    return (
        f'<section class="video_item">{anchor}<video poster="{poster}" preload="none"></video></a>'
        f'{dur}<div class="info"><p>{info}</p></div></section>'
    )


def descriptor(subject: str, *, wire_id: str = "wid123", name: str = "profile.model-videos") -> dict:
    return {
        "fingerprint": {"id": wire_id, "name": name, "locale": "en",
                        "path": f"profile/{subject}", "method": "GET", "v": "acj"},
        "serverMemo": {"children": [], "errors": [], "htmlHash": "h4sh",
                       "data": {"username": subject, "currentPage": 1, "page": 1, "popular": False,
                                "paginators": {"page": 1}},
                       "dataMeta": [], "checksum": "c0ffee"},
    }


def landing_page(subject: str, cards: list[str], *, csrf: str = "csrf-tok",
                 component: Optional[dict] = None, extra: str = "") -> str:
    comp = component if component is not None else descriptor(subject)
    attr = html.escape(json.dumps(comp), quote=True) if comp else ""
    section = (f'<section wire:id="wid123" wire:initial-data="{attr}">' if comp else "<section>")
    return (
        f'<html><head><meta name="csrf-token" content="{csrf}"></head><body>'
        f'{section}{"".join(cards)}{extra}</section></body></html>'
    )


def livewire_response(fragment: str, *, status: int = 200, set_cookies: Optional[list[str]] = None) -> FetchResponse:
    return FetchResponse(
        status=status,
        text=json.dumps({"effects": {"html": fragment, "dirty": []}, "serverMemo": {}}),
        set_cookies=list(set_cookies or []),
    )


def ok(text: str, *, set_cookies: Optional[list[str]] = None) -> FetchResponse:
    return FetchResponse(status=200, text=text, set_cookies=list(set_cookies or []))


# ──────────────────────────────
#  Packer fixture
# ──────────────────────────────
_WORD_RE = re.compile(r"\b\w+\b", re.ASCII)


def pack(source: str, radix: int = 62) -> str:
    """Minimal p,a,c,k,e,d packer: every word is replaced by its index in base `radix`."""
    words: list[str] = []
    for w in _WORD_RE.findall(source):
        if w not in words:
            words.append(w)
    payload = _WORD_RE.sub(lambda m: _base_encode(words.index(m.group(0)), radix), source)
    payload = payload.replace("\\", "\\\\").replace("'", "\\'")
    return (
        "<script>eval(function(p,a,c,k,e,d){e=function(c){return c.toString(a)};"
        "while(c--)if(k[c])p=p.replace(new RegExp('\\\\b'+e(c)+'\\\\b','g'),k[c]);return p}"
        f"('{payload}',{radix},{len(words)},'{'|'.join(words)}'.split('|'),0,{{}}))</script>"
    )


def run(coro_fn: Callable, *args, **kwargs):
    return asyncio.run(coro_fn(*args, **kwargs))
