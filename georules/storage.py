"""R2 object storage through the ``wrangler`` CLI."""

import asyncio
import contextlib
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Protocol

import anyio
from loguru import logger

from georules.errors import ConfigError


class ObjectStore(Protocol):  # noqa: D101
    async def get(self, key: str) -> bytes | None:
        """Return the object body, or ``None`` when it cannot be fetched."""
        ...

    async def put(self, key: str, path: Path, content_type: str) -> None:
        """Upload ``path`` under ``key``; raise on any failure."""
        ...


class WranglerError(RuntimeError):  # noqa: D101
    pass


def resolve_bucket(bucket: str | None, repo_root: Path) -> str:
    """``bucket`` if set, else the first ``[[r2_buckets]].bucket_name`` in wrangler.toml."""
    if bucket and bucket.strip():
        return bucket.strip()

    toml_path = repo_root / "wrangler.toml"
    with contextlib.suppress(OSError, tomllib.TOMLDecodeError):
        config = tomllib.loads(toml_path.read_text(encoding="utf-8"))
        for entry in config.get("r2_buckets", []):
            if isinstance(entry, dict) and (name := entry.get("bucket_name")):
                return str(name)

    msg = (
        "R2 bucket name not found. Set env R2_BUCKET or "
        "wrangler.toml [[r2_buckets]].bucket_name"
    )
    raise ConfigError(msg)


def resolve_wrangler(repo_root: Path) -> str:  # noqa: D103
    binary = "wrangler.cmd" if os.name == "nt" else "wrangler"
    local = repo_root / "node_modules" / ".bin" / binary
    return str(local) if local.exists() else binary


class WranglerStore:  # noqa: D101
    def __init__(self, bucket: str, repo_root: Path, binary: str | None = None) -> None:  # noqa: D107
        self.bucket = bucket
        self.repo_root = repo_root
        self.binary = binary or resolve_wrangler(repo_root)

    async def _run(self, *args: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                cwd=self.repo_root,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            msg = f"cannot run {self.binary}: {exc}"
            raise WranglerError(msg) from exc

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            detail = (stderr or stdout).decode("utf-8", errors="replace").strip()
            raise WranglerError(detail or f"wrangler exited with {process.returncode}")
        return stdout.decode("utf-8", errors="replace")

    async def get(self, key: str) -> bytes | None:  # noqa: D102
        handle, name = tempfile.mkstemp(prefix="r2-manifest-", suffix=".json")
        os.close(handle)
        tmp = anyio.Path(name)
        try:
            await self._run(
                "--remote", "r2", "object", "get", f"{self.bucket}/{key}", "--file", name
            )
            return await tmp.read_bytes()
        except (WranglerError, OSError) as exc:
            logger.debug("GET {} unavailable: {}", key, exc)
            return None
        finally:
            with contextlib.suppress(OSError):
                await tmp.unlink()

    async def put(self, key: str, path: Path, content_type: str) -> None:  # noqa: D102
        await self._run(
            "--remote",
            "r2",
            "object",
            "put",
            f"{self.bucket}/{key}",
            "--file",
            str(path),
            "--content-type",
            content_type,
        )
