import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Path, Query

from src.archive import config
from src.archive.cache import TTLCache
from src.archive.client import ArchiveClient
from src.archive.fetcher import Fetcher
from src.archive.resolver import EmbedResolver

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("camarchive.api")

_fetcher: Fetcher | None = None
_client: ArchiveClient | None = None
_resolver: EmbedResolver | None = None
_cache: TTLCache | None = None


def get_client() -> ArchiveClient:
    global _fetcher, _client
    if _client is None:
        _fetcher = _fetcher or Fetcher()
        _client = ArchiveClient(fetcher=_fetcher)
    return _client


def get_resolver() -> EmbedResolver:
    global _fetcher, _resolver
    if _resolver is None:
        _fetcher = _fetcher or Fetcher()
        _resolver = EmbedResolver(fetcher=_fetcher)
    return _resolver


def get_cache() -> TTLCache:
    global _cache
    if _cache is None:
        _cache = TTLCache()
    return _cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _fetcher is not None:
        await _fetcher.close()
    if _cache is not None:
        _cache.close()


app = FastAPI(title="CamArchive | Archive API", lifespan=lifespan)


# --- 1. LISTING ---
@app.get("/archive/{subject}")
async def get_archive_page(
    subject: str = Path(..., min_length=1),
    page: int = Query(1, ge=1),
    client: ArchiveClient = Depends(get_client),
    cache: TTLCache = Depends(get_cache),
):
    key = f"page:{subject}:1"
    if page == 1:
        cached = cache.get(key)
        if cached is not None:
            return {"success": True, "data": cached, "cached": True}

    result = await client.get_page(subject, page)
    data = result.to_dict()
    if result.error:
        log.info(f"[{subject}] page {page} unavailable: {result.error}")
        return {"success": False, "error": result.error, "data": data}

    if page == 1 and result.records:
        cache.set(key, data)
    return {"success": True, "data": data}


# --- 2. EMBEDS ---
@app.get("/embed")
async def get_embed(
    url: str = Query(..., min_length=1),
    resolver: EmbedResolver = Depends(get_resolver),
    cache: TTLCache = Depends(get_cache),
):
    key = f"embed:{url}"
    cached = cache.get(key)
    if cached is not None:
        return {"success": True, "data": cached, "cached": True}

    result = await resolver.resolve_embed(url)
    if not result.embed_url:
        return {"success": False, "error": result.error or "not_found", "data": result.to_dict()}

    data = result.to_dict()
    cache.set(key, data)
    return {"success": True, "data": data}


# --- 3. CACHE ---
@app.post("/cache/purge")
def purge_cache(cache: TTLCache = Depends(get_cache)):
    return {"removed": cache.delete_expired()}
