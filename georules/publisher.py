"""Incremental upload of build outputs using a sha256 manifest.

Only objects whose hash or size differ from the remote manifest are uploaded. The
manifest is read once, merged in memory, and written once after every upload has
succeeded, so a failed run leaves the previous manifest in place.
"""

import hashlib
import os
import tempfile
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import anyio
import orjson
from loguru import logger

from georules.errors import PublishFailed
from georules.models import Manifest, ManifestEntry, PlanItem
from georules.pool import run_pool
from georules.storage import ObjectStore

_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class Route:
    """Files under ``directory`` ending in ``suffix`` map to ``<prefix>/<basename>``."""

    directory: Path
    suffix: str
    prefix: str


@dataclass(frozen=True)
class Singleton:  # noqa: D101
    path: Path
    key: str


@dataclass
class PublishReport:  # noqa: D101
    planned: int = 0
    changed: list[PlanItem] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    manifest: Manifest | None = None

    @property
    def unchanged(self) -> int:  # noqa: D102
        return self.planned - len(self.changed)


def content_type_for(path: Path) -> str:  # noqa: D103
    return "application/json" if path.suffix == ".json" else "application/octet-stream"


async def sha256_file(path: Path) -> str:  # noqa: D103
    digest = hashlib.sha256()
    async with await anyio.open_file(path, "rb") as handle:
        while chunk := await handle.read(_CHUNK):
            digest.update(chunk)
    return digest.hexdigest()


async def _plan_item(path: Path, key: str) -> PlanItem:
    stat = await anyio.Path(path).stat()
    return PlanItem(
        path=path,
        key=key,
        size=stat.st_size,
        sha256=await sha256_file(path),
        content_type=content_type_for(path),
    )


async def build_plan(
    routes: Iterable[Route], singletons: Iterable[Singleton] = ()
) -> list[PlanItem]:
    """Inventory local artifacts, sorted by remote key. Missing paths are ignored."""
    plan: list[PlanItem] = []
    for route in routes:
        directory = anyio.Path(route.directory)
        if not await directory.is_dir():
            continue
        async for found in directory.rglob(f"*{route.suffix}"):
            if await found.is_file():
                plan.append(
                    await _plan_item(Path(found), f"{route.prefix}/{found.name}")
                )

    for singleton in singletons:
        if await anyio.Path(singleton.path).is_file():
            plan.append(await _plan_item(singleton.path, singleton.key))

    plan.sort(key=lambda item: item.key)
    return plan


def diff_plan(plan: Iterable[PlanItem], manifest: Manifest) -> list[PlanItem]:
    """Items with no manifest entry, or whose hash or size differ from it."""
    changed: list[PlanItem] = []
    for item in plan:
        remote = manifest.entries.get(item.key)
        if remote is None or remote.sha256 != item.sha256 or remote.size != item.size:
            changed.append(item)
    return changed


def merge_manifest(
    manifest: Manifest, plan: Iterable[PlanItem], generated_at: int | None = None
) -> Manifest:
    """Local inventory over remote entries; local wins on key collision."""
    entries = dict(manifest.entries)
    for item in plan:
        entries[item.key] = ManifestEntry(sha256=item.sha256, size=item.size)
    return Manifest(
        version=1,
        generated_at=int(time.time() * 1000) if generated_at is None else generated_at,
        entries=entries,
    )


async def fetch_manifest(store: ObjectStore, key: str) -> Manifest:
    """Remote manifest, or an empty one when missing or unparseable."""
    body = await store.get(key)
    if body is None:
        return Manifest()
    try:
        return Manifest.from_json(orjson.loads(body))
    except orjson.JSONDecodeError:
        logger.warning("Remote manifest {} is not valid JSON; treating as empty", key)
        return Manifest()


async def store_manifest(store: ObjectStore, key: str, manifest: Manifest) -> None:  # noqa: D103
    handle, name = tempfile.mkstemp(prefix="r2-manifest-out-", suffix=".json")
    os.close(handle)
    tmp = anyio.Path(name)
    try:
        await tmp.write_bytes(orjson.dumps(manifest.to_json()))
        await store.put(key, Path(name), "application/json")
    except PublishFailed:
        raise
    except Exception as exc:
        raise PublishFailed(key, str(exc)) from exc
    finally:
        await tmp.unlink(missing_ok=True)


async def upload_changed(
    changed: Sequence[PlanItem],
    store: ObjectStore,
    concurrency: int,
    *,
    dry_run: bool = False,
) -> list[str]:
    """PUT every changed item and return the keys written; a dry run writes none.

    The first failure raises ``PublishFailed`` and stops the rest.
    """

    async def _put(item: PlanItem) -> str | None:
        if dry_run:
            logger.info("[DRY] PUT {} <- {} ({} bytes)", item.key, item.path, item.size)
            return None
        try:
            await store.put(item.key, item.path, item.content_type)
        except Exception as exc:
            logger.error("Failed PUT {}: {}", item.key, exc)
            raise PublishFailed(item.key, str(exc)) from exc
        logger.info("PUT {} ({} bytes)", item.key, item.size)
        return item.key

    logger.info(
        "Uploading {} changed object(s) with concurrency={} ...",
        len(changed),
        concurrency,
    )
    results = await run_pool(
        [lambda item=item: _put(item) for item in changed], concurrency, fail_fast=True
    )
    return [key for key in results if isinstance(key, str)]


async def publish(
    plan: Sequence[PlanItem],
    manifest: Manifest,
    store: ObjectStore,
    concurrency: int,
    *,
    dry_run: bool = False,
) -> PublishReport:
    """Upload what changed and return the merged manifest; the caller persists it.

    ``report.manifest`` stays ``None`` when nothing changed.
    """
    report = PublishReport(planned=len(plan), changed=diff_plan(plan, manifest))
    if not report.changed:
        logger.info("All objects up-to-date. No uploads needed.")
        return report

    report.uploaded = await upload_changed(
        report.changed, store, concurrency, dry_run=dry_run
    )
    report.manifest = merge_manifest(manifest, plan)
    return report


async def sync(
    routes: Iterable[Route],
    singletons: Iterable[Singleton],
    store: ObjectStore,
    manifest_key: str,
    concurrency: int,
    *,
    dry_run: bool = False,
) -> PublishReport:
    """Plan, diff, upload, then write the merged manifest as the very last step."""
    plan = await build_plan(routes, singletons)
    if not plan:
        logger.info("No local artifacts found to sync.")
        return PublishReport()

    remote = await fetch_manifest(store, manifest_key)
    report = await publish(plan, remote, store, concurrency, dry_run=dry_run)
    if report.manifest is None:
        return report

    if dry_run:
        logger.info("[DRY] PUT {} (manifest)", manifest_key)
    else:
        await store_manifest(store, manifest_key, report.manifest)
        logger.info("PUT {} (manifest)", manifest_key)
    return report
