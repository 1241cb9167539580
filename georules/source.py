import anyio  # noqa: D100
import httpx
from loguru import logger

from georules.errors import SourceUnavailable

GEOSITE_URL = "https://cdn.jsdelivr.net/gh/Loyalsoldier/v2ray-rules-dat@release/geosite.dat"
GEOIP_URL = "https://cdn.jsdelivr.net/gh/Loyalsoldier/v2ray-rules-dat@release/geoip.dat"

_TIMEOUT = httpx.Timeout(60.0, pool=30.0)


async def load_database(location: str) -> bytes:
    """Read a database from an ``http(s)://`` URL, a ``file://`` URL or a local path."""
    if location.startswith(("http://", "https://")):
        logger.info("Downloading {}", location)
        try:
            async with httpx.AsyncClient(
                timeout=_TIMEOUT, follow_redirects=True, http2=True
            ) as client:
                resp = await client.get(location)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            msg = f"Failed to download {location}: {exc}"
            raise SourceUnavailable(msg) from exc
        payload = resp.content
    else:
        path = anyio.Path(location.removeprefix("file://"))
        logger.info("Using local database {}", path)
        try:
            payload = await path.read_bytes()
        except OSError as exc:
            msg = f"Cannot read {path}: {exc}"
            raise SourceUnavailable(msg) from exc

    logger.info("Loaded {:.2f} MB", len(payload) / (1024 * 1024))
    return payload
