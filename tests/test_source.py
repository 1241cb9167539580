import functools

import httpx
import pytest

from georules import source
from georules.errors import SourceUnavailable

pytestmark = pytest.mark.anyio


def _mock_client(monkeypatch, handler):
    monkeypatch.setattr(
        source.httpx,
        "AsyncClient",
        functools.partial(httpx.AsyncClient, transport=httpx.MockTransport(handler)),
    )


async def test_download_follows_redirects(monkeypatch):
    def handler(request):
        if request.url.path == "/geosite.dat":
            return httpx.Response(302, headers={"location": "https://cdn.test/v2/geosite.dat"})
        return httpx.Response(200, content=b"\x0a\x00")

    _mock_client(monkeypatch, handler)

    assert await source.load_database("https://cdn.test/geosite.dat") == b"\x0a\x00"


async def test_download_error_status(monkeypatch):
    _mock_client(monkeypatch, lambda request: httpx.Response(404))

    with pytest.raises(SourceUnavailable, match="404"):
        await source.load_database("https://cdn.test/geoip.dat")


async def test_local_path_and_file_url(tmp_path):
    path = tmp_path / "geoip.dat"
    path.write_bytes(b"\x0a\x02\x0a\x00")

    assert await source.load_database(str(path)) == b"\x0a\x02\x0a\x00"
    assert await source.load_database(f"file://{path}") == b"\x0a\x02\x0a\x00"
