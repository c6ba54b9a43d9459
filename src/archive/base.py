"""
Core types for the archive client.

  - Session: protocol state captured from a subject's landing page
  - MediaRecord: one video card scraped from a listing fragment
  - PageResult: one page of a subject's listing
"""
from __future__ import annotations
import copy
from dataclasses import dataclass, field, replace
from typing import Any, Optional

# ──────────────────────────────
#  Session (owned by SessionStore)
# ──────────────────────────────
@dataclass(frozen=True)
class Session:
    subject: str
    csrf_token: str = ""
    cookies: dict[str, str] = field(default_factory=dict)
    fingerprint: Any = None            # echoed back verbatim
    server_memo: Any = None            # echoed back, only page fields rewritten
    component_name: str = ""           # e.g. "profile.model-videos"

    @property
    def protocol_capable(self) -> bool:
        return bool(self.component_name) and self.fingerprint is not None and self.server_memo is not None

    def with_cookies(self, cookies: dict[str, str]) -> "Session":
        """Copy of this session with `cookies` merged over the current ones."""
        merged = dict(self.cookies)
        merged.update(cookies)
        return replace(self, cookies=merged)

    def protocol_state(self) -> tuple[Any, Any]:
        """Deep copies of fingerprint and serverMemo, safe to mutate per request."""
        return copy.deepcopy(self.fingerprint), copy.deepcopy(self.server_memo)

# ──────────────────────────────
#  Scraped records
# ──────────────────────────────
@dataclass
class MediaRecord:
    id: str
    title: str
    thumbnail_url: str
    page_url: str                      # always absolute
    duration: Optional[str] = None
    view_count: Optional[str] = None
    relative_date: Optional[str] = None
    embed_url: str = ""                # filled in later by EmbedResolver

    def with_embed(self, embed_url: str) -> "MediaRecord":
        return replace(self, embed_url=embed_url)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail": self.thumbnail_url,
            "duration": self.duration or "",
            "views": self.view_count or "",
            "date": self.relative_date or "",
            "pageUrl": self.page_url,
            "embedUrl": self.embed_url,
        }

# ──────────────────────────────
#  Listing page
# ──────────────────────────────
@dataclass
class PageResult:
    subject: str
    records: list[MediaRecord] = field(default_factory=list)
    current_page: int = 1
    total_pages: int = 1
    error: Optional[str] = None        # short code when the page degraded to empty

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages

    @classmethod
    def empty(cls, subject: str, page: int, error: str) -> "PageResult":
        return cls(subject=subject, records=[], current_page=page, total_pages=page, error=error)

    def to_dict(self):
        d = {
            "username": self.subject,
            "videos": [r.to_dict() for r in self.records],
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "hasMore": self.has_more,
        }
        if self.error:
            d["error"] = self.error
        return d

# ──────────────────────────────
#  Initializer output
# ──────────────────────────────
@dataclass
class InitResult:
    success: bool
    session: Optional[Session] = None
    records: list[MediaRecord] = field(default_factory=list)
    total_records: Optional[int] = None
    error: Optional[str] = None

# ──────────────────────────────
#  Embed resolution output
# ──────────────────────────────
@dataclass
class EmbedResult:
    embed_url: str = ""
    thumbnail_url: str = ""
    error: Optional[str] = None

    def to_dict(self):
        d = {"embedUrl": self.embed_url, "thumbnailUrl": self.thumbnail_url}
        if self.error:
            d["error"] = self.error
        return d
