"""
Track metadata and artwork helpers for the now-playing surface.

The surface wants a list of artwork variants (one per advertised size).
Optionally the WebSocket surface inlines a small JPEG thumbnail so clients
without network access to the artwork host can still show a cover.
"""

import asyncio
import base64
import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from io import BytesIO

import aiohttp
from PIL import Image

log = logging.getLogger(__name__)

ARTWORK_SIZES = (96, 128, 256, 512)
MAX_ARTWORK_SIZE = 200 * 1024  # 200 KB limit for inlined JPEG output
ARTWORK_CACHE_SIZE = 32

# Shared thread pool for CPU-bound image processing
_artwork_executor = ThreadPoolExecutor(max_workers=2)


def _guess_mime(url: str) -> str:
    path = url.split("?", 1)[0].lower()
    if path.endswith(".png"):
        return "image/png"
    if path.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


def artwork_variants(url: str | None, sizes=ARTWORK_SIZES) -> list[dict]:
    """One ``{src, sizes, type}`` entry per size; the same URL serves them all."""
    if not url:
        return []
    mime = _guess_mime(url)
    return [{"src": url, "sizes": f"{s}x{s}", "type": mime} for s in sizes]


@dataclass(frozen=True)
class TrackMetadata:
    title: str = ""
    artist: str = ""
    artwork: list = field(default_factory=list)

    @classmethod
    def from_episode(cls, title, artist, cover_url=None) -> "TrackMetadata":
        return cls(title=title or "", artist=artist or "",
                   artwork=artwork_variants(cover_url))

    @property
    def artwork_url(self) -> str | None:
        """URL of the largest advertised variant."""
        if not self.artwork:
            return None
        return self.artwork[-1]["src"]

    def to_dict(self) -> dict:
        return {"title": self.title, "artist": self.artist,
                "artwork": list(self.artwork)}


class ArtworkCache:
    """Simple LRU cache for artwork data (URL -> base64 dict)."""

    def __init__(self, max_size=ARTWORK_CACHE_SIZE):
        self.max_size = max_size
        self._cache: OrderedDict[str, dict] = OrderedDict()

    def get(self, url: str):
        if url in self._cache:
            self._cache.move_to_end(url)
            return self._cache[url]
        return None

    def put(self, url: str, data: dict):
        if url in self._cache:
            self._cache.move_to_end(url)
        elif len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
        self._cache[url] = data

    def __contains__(self, url: str):
        return url in self._cache

    def __len__(self):
        return len(self._cache)


def process_image(image_bytes: bytes, max_edge: int = ARTWORK_SIZES[-1]) -> dict | None:
    """Downscale raw image bytes to a JPEG thumbnail, base64 encoded.

    Runs in a thread pool (CPU-bound).  Returns ``{'base64': str, 'size': (w,h)}``
    or None if the bytes are not a decodable image.
    """
    try:
        image = Image.open(BytesIO(image_bytes))
        if image.mode in ("RGBA", "LA", "P"):
            image = image.convert("RGB")
        image.thumbnail((max_edge, max_edge))

        buf = BytesIO()
        image.save(buf, "JPEG", quality=85)
        if buf.tell() > MAX_ARTWORK_SIZE:
            buf = BytesIO()
            image.save(buf, "JPEG", quality=60)

        return {
            "base64": base64.b64encode(buf.getvalue()).decode("utf-8"),
            "size": image.size,
        }
    except Exception as e:
        log.warning("Error processing image: %s", e)
        return None


async def fetch_artwork(session: aiohttp.ClientSession, url: str,
                        cache: ArtworkCache) -> dict | None:
    """Fetch artwork from *url*, return ``{'base64': ..., 'size': ...}`` or None."""
    cached = cache.get(url)
    if cached is not None:
        log.debug("Artwork cache hit for %s", url)
        return cached

    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
            resp.raise_for_status()
            image_bytes = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.warning("Error fetching artwork: %s", e)
        return None

    if not image_bytes:
        log.warning("Artwork URL returned 0 bytes")
        return None

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(_artwork_executor, process_image, image_bytes)
    if result:
        cache.put(url, result)
        log.info("Cached artwork for %s (%d items in cache)", url, len(cache))
    return result
