from io import BytesIO

import httpx
import pytest
import respx
from PIL import Image

from affsync.services.image_cache import (
    ImageCache,
    ImageStoreError,
    clean_image_url,
    transcode_to_webp,
    url_hash,
)
from affsync.stores.objects import LocalObjectStore, ObjectStore

SVG = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>'


def _png(width: int, height: int) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def local_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "uploads", "/uploads")


@pytest.fixture
def cache(local_store, tmp_path) -> ImageCache:
    return ImageCache(local_store, fallback_store=LocalObjectStore(tmp_path / "fallback", "/fallback"))


def test_clean_image_url():
    assert clean_image_url("  https://cdn.test/a.png ") == "https://cdn.test/a.png"
    assert clean_image_url("https://cdn.test/a.png?%20junk") == "https://cdn.test/a.png"
    assert clean_image_url("ftp://cdn.test/a.png") is None
    assert clean_image_url("") is None
    assert clean_image_url(None) is None


def test_transcode_bounds_and_never_enlarges():
    large = transcode_to_webp(_png(2400, 1200), 1200, 80)
    with Image.open(BytesIO(large)) as img:
        assert img.format == "WEBP"
        assert img.size == (1200, 600)

    small = transcode_to_webp(_png(40, 20), 1200, 80)
    with Image.open(BytesIO(small)) as img:
        assert img.size == (40, 20)


async def test_raster_is_stored_as_webp(cache, local_store):
    url = "https://cdn.test/logo.png"
    async with respx.mock(assert_all_called=True) as router:
        router.get(url).mock(return_value=httpx.Response(200, content=_png(64, 64), headers={"content-type": "image/png"}))
        result = await cache.cache(url, "advertisers")

    assert result == f"/uploads/advertisers/{url_hash(url)}.webp"
    assert await local_store.exists(f"advertisers/{url_hash(url)}.webp")
    await cache.close()


async def test_svg_is_stored_as_is(cache, local_store):
    url = "https://cdn.test/logo.svg"
    async with respx.mock(assert_all_called=True) as router:
        router.get(url).mock(
            return_value=httpx.Response(200, content=SVG, headers={"content-type": "image/svg+xml; charset=utf-8"})
        )
        result = await cache.cache(url, "advertisers")

    path = f"advertisers/{url_hash(url)}.svg"
    assert result == f"/uploads/{path}"
    assert local_store._resolve(path).read_bytes() == SVG
    await cache.close()


async def test_existing_object_is_reused_without_fetching(cache, local_store):
    url = "https://cdn.test/known.png"
    await local_store.put(f"products/{url_hash(url)}.webp", b"cached", "image/webp")

    async with respx.mock(assert_all_called=False) as router:
        route = router.get(url)
        result = await cache.cache(url, "products")

    assert result == f"/uploads/products/{url_hash(url)}.webp"
    assert not route.called


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404),
        httpx.Response(403),
        httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"}),
        httpx.Response(200, content=b"not an image", headers={"content-type": "image/png"}),
        httpx.Response(500),
    ],
)
async def test_failures_return_none(cache, response):
    url = "https://cdn.test/broken.png"
    async with respx.mock() as router:
        router.get(url).mock(return_value=response)
        assert await cache.cache(url, "products") is None
    await cache.close()


async def test_invalid_url_returns_none(cache):
    assert await cache.cache("not a url", "products") is None


async def test_store_bytes_uses_md5_name(cache):
    url = await cache.store_bytes(b"\x89PNG data", "image/png", "manual_uploads")
    assert url.startswith("/uploads/manual_uploads/")
    assert url.endswith(".png")


async def test_store_bytes_falls_back_to_local(tmp_path):
    class BrokenStore(LocalObjectStore):
        name = "broken"

        async def put(self, path, data, content_type, cache_control=""):
            raise OSError("bucket unavailable")

    fallback = LocalObjectStore(tmp_path / "fallback", "/fallback")
    cache = ImageCache(BrokenStore(tmp_path / "x"), fallback_store=fallback)

    url = await cache.store_bytes(b"svgdata", "image/svg+xml")
    assert url.startswith("/fallback/manual_uploads/")
    assert url.endswith(".svg")


async def test_store_bytes_rejects_empty(cache):
    with pytest.raises(ImageStoreError):
        await cache.store_bytes(b"", "image/png")


async def test_oversized_image_returns_none(cache, local_store, monkeypatch):
    # 64x64 exceeds twice this limit, so Pillow refuses to open it
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    url = "https://cdn.test/huge.png"
    async with respx.mock(assert_all_called=True) as router:
        router.get(url).mock(return_value=httpx.Response(200, content=_png(64, 64), headers={"content-type": "image/png"}))
        assert await cache.cache(url, "advertisers") is None

    assert not await local_store.exists(f"advertisers/{url_hash(url)}.webp")
    await cache.close()


def test_object_store_interface_is_abstract():
    with pytest.raises(TypeError):
        ObjectStore()


async def test_local_store_put_and_exists(local_store):
    assert not await local_store.exists("products/a/b.webp")
    url = await local_store.put("products/a/b.webp", b"data", "image/webp")

    assert url == "/uploads/products/a/b.webp"
    assert await local_store.exists("products/a/b.webp")
    assert local_store._resolve("products/a/b.webp").read_bytes() == b"data"
