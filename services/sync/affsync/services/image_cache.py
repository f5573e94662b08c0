"""Image cache: content-addressed copies of external images.

Flow (cache):
1. Clean the source URL (trim, drop "?%20..." junk suffixes, http(s) only)
2. Address = "{folder}/{md5(clean_url)}.{webp|svg}"; if it exists, return it
3. Fetch with a browser user agent (some CDNs reject default clients)
4. Require an image/* content type
5. SVG is stored as-is; rasters are bounded to 1200px and re-encoded as WebP
6. Store with immutable cache headers and return the public URL

Any failure returns None: the caller keeps its previous value. A failed
image never aborts a sync pass.
"""

import asyncio
import hashlib
import logging
from io import BytesIO

import httpx
from PIL import Image, UnidentifiedImageError

from affsync.networks.base import BROWSER_USER_AGENT
from affsync.settings import get_settings
from affsync.stores.objects import (
    OBJECT_STORE_ERRORS,
    ObjectStore,
    get_local_store,
    get_object_store,
)

logger = logging.getLogger("uvicorn.error")

SVG_CONTENT_TYPE = "image/svg+xml"
WEBP_CONTENT_TYPE = "image/webp"

UPLOAD_EXTENSIONS = {
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


class ImageStoreError(RuntimeError):
    """Raised when an uploaded image cannot be stored anywhere."""


def clean_image_url(url: str | None) -> str | None:
    """Normalize a source URL; None when it is not a fetchable http(s) URL."""
    if not url or not isinstance(url, str):
        return None
    cleaned = url.strip()
    if "?%20" in cleaned:
        cleaned = cleaned.split("?%20", 1)[0]
    if not cleaned.lower().startswith(("http://", "https://")):
        return None
    return cleaned


def url_hash(url: str) -> str:
    return hashlib.md5(url.encode()).hexdigest()


def transcode_to_webp(data: bytes, max_dimension: int, quality: int) -> bytes:
    """Bound a raster image to max_dimension (never enlarging) and encode as WebP."""
    with Image.open(BytesIO(data)) as img:
        img.load()
        if "A" in img.getbands() or img.mode == "P":
            img = img.convert("RGBA")
        else:
            img = img.convert("RGB")
        img.thumbnail((max_dimension, max_dimension), resample=Image.Resampling.LANCZOS)

        buffer = BytesIO()
        img.save(buffer, format="WEBP", quality=quality, method=6)
        return buffer.getvalue()


class ImageCache:
    """Fetch, normalize and store external images."""

    def __init__(
        self,
        store: ObjectStore | None = None,
        *,
        fallback_store: ObjectStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.store = store or get_object_store()
        self.fallback_store = fallback_store or get_local_store()
        self.max_dimension = settings.image_max_dimension
        self.quality = settings.image_webp_quality
        self.timeout = settings.image_fetch_timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={
                    "User-Agent": BROWSER_USER_AGENT,
                    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
                },
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def cache(self, source_url: str | None, folder: str) -> str | None:
        """Cache an external image and return its stable internal URL (None on failure)."""
        url = clean_image_url(source_url)
        if url is None:
            return None

        digest = url_hash(url)
        webp_path = f"{folder}/{digest}.webp"
        svg_path = f"{folder}/{digest}.svg"

        try:
            for path in (webp_path, svg_path):
                if await self.store.exists(path):
                    return self.store.public_url(path)

            client = await self._get_client()
            response = await client.get(url)
            if response.status_code in (403, 404):
                logger.debug(f"[images] {response.status_code} for {url}")
                return None
            response.raise_for_status()

            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                logger.warning(f"[images] skipping non-image content for {url} (type: {content_type or 'none'})")
                return None

            if "svg" in content_type:
                return await self.store.put(svg_path, response.content, SVG_CONTENT_TYPE)

            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(
                None, transcode_to_webp, response.content, self.max_dimension, self.quality
            )
            return await self.store.put(webp_path, data, WEBP_CONTENT_TYPE)

        except httpx.HTTPError as e:
            logger.warning(f"[images] fetch failed for {url}: {e}")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.warning(f"[images] processing failed for {url}: {e}")
        except OBJECT_STORE_ERRORS as e:
            logger.error(f"[images] store failed for {url}: {e}")
        return None

    async def store_bytes(self, data: bytes, content_type: str, folder: str = "manual_uploads") -> str:
        """Store an uploaded image as-is, content-addressed by md5(data).

        Falls back to the local directory when the primary store errors.

        Raises:
            ImageStoreError: If the upload is empty or neither store accepts it.
        """
        if not data:
            raise ImageStoreError("Empty upload")
        content_type = (content_type or "").split(";")[0].strip().lower()
        extension = UPLOAD_EXTENSIONS.get(content_type, "jpg")
        path = f"{folder}/{hashlib.md5(data).hexdigest()}.{extension}"

        try:
            return await self.store.put(path, data, content_type or "image/jpeg")
        except OBJECT_STORE_ERRORS as e:
            logger.error(f"[images] upload to {self.store.name} failed, falling back to local disk: {e}")

        try:
            return await self.fallback_store.put(path, data, content_type or "image/jpeg")
        except OSError as e:
            raise ImageStoreError(f"Could not store upload: {e}") from e
