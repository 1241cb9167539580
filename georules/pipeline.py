"""Phase orchestration: geosite JSON, geoip JSON, SRS compilation, R2 sync."""

from __future__ import annotations

from dataclasses import dataclass

import anyio
from loguru import logger

from georules.compiler import CompileReport, compile_all, domain_jobs, ip_jobs
from georules.config import Settings
from georules.decoder import decode_geoip, decode_geosite
from georules.errors import GeoRulesError
from georules.models import Category, Group
from georules.normalize import normalize_categories, normalize_groups
from georules.publisher import PublishReport, Route, Singleton, sync
from georules.source import load_database
from georules.storage import ObjectStore, WranglerStore, resolve_bucket
from georules.writer import load_categories, load_groups, write_categories, write_groups


@dataclass
class PhaseSummary:  # noqa: D101
    phase: str
    generated: int = 0
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0

    def log(self) -> None:  # noqa: D102
        logger.info(
            "[{}] generated={} uploaded={} skipped={} failed={}",
            self.phase,
            self.generated,
            self.uploaded,
            self.skipped,
            self.failed,
        )


async def build_geosite(settings: Settings) -> list[Category]:  # noqa: D103
    payload = await load_database(settings.geosite_source)
    logger.info("Decoding geosite.dat ...")
    entries = decode_geosite(payload)
    logger.info("Decoded categories: {}", len(entries))

    categories = normalize_categories(entries)
    await write_categories(
        categories,
        anyio.Path(settings.geosite_json_dir),
        anyio.Path(settings.index_path),
        anyio.Path(settings.table_path),
        f"{settings.base_url.rstrip('/')}/geosite",
    )
    return categories


async def build_geoip(settings: Settings) -> list[Group]:  # noqa: D103
    payload = await load_database(settings.geoip_source)
    logger.info("Decoding geoip.dat ...")
    entries = decode_geoip(payload)
    logger.info("Decoded groups: {}", len(entries))

    groups = normalize_groups(entries)
    await write_groups(
        groups,
        anyio.Path(settings.geoip_json_dir),
        anyio.Path(settings.geoip_index_path),
        f"{settings.base_url.rstrip('/')}/geoip",
    )
    return groups


async def build_rule_sets(
    settings: Settings,
    categories: list[Category] | None = None,
    groups: list[Group] | None = None,
) -> CompileReport:
    """Compile every category and group variant; reads the JSON output when not given."""
    if categories is None:
        categories = await load_categories(anyio.Path(settings.geosite_json_dir))
    if groups is None:
        groups = await load_groups(anyio.Path(settings.geoip_json_dir))

    report = CompileReport()
    jobs = domain_jobs(
        categories, settings.domain_specs(), anyio.Path(settings.srs_dir), report
    )
    jobs += ip_jobs(
        groups, settings.ip_specs(), anyio.Path(settings.srs_geoip_dir), report
    )
    await compile_all(jobs, settings.sing_box_bin, settings.srs_concurrency, report)
    return report


def publish_layout(settings: Settings) -> tuple[list[Route], list[Singleton]]:  # noqa: D103
    routes = [
        Route(settings.geosite_json_dir, ".json", "geosite-json"),
        Route(settings.srs_dir, ".srs", "geosite"),
        Route(settings.geoip_json_dir, ".json", "geoip-json"),
        Route(settings.srs_geoip_dir, ".srs", "geoip"),
    ]
    singletons = [
        Singleton(settings.index_path, "geosite/index.json"),
        Singleton(settings.geoip_index_path, "geoip/index.json"),
    ]
    return routes, singletons


async def sync_artifacts(
    settings: Settings, store: ObjectStore | None = None
) -> PublishReport:
    """Push changed artifacts; ``store`` defaults to wrangler against the resolved bucket."""
    if store is None:
        bucket = resolve_bucket(settings.r2_bucket, settings.root)
        logger.info("Bucket: {}", bucket)
        store = WranglerStore(bucket, settings.root)
    logger.info("Manifest key: {}", settings.manifest_key)
    if settings.dry_run:
        logger.info("DRY RUN enabled; no writes will occur.")

    routes, singletons = publish_layout(settings)
    return await sync(
        routes,
        singletons,
        store,
        settings.manifest_key,
        settings.r2_concurrency,
        dry_run=settings.dry_run,
    )


async def run(settings: Settings, store: ObjectStore | None = None) -> int:
    """Run the configured phases in order and return the process exit status."""
    categories: list[Category] | None = None
    groups: list[Group] | None = None

    try:
        if "geosite" in settings.phases:
            categories = await build_geosite(settings)
            PhaseSummary("geosite", generated=len(categories)).log()

        if "geoip" in settings.phases:
            groups = await build_geoip(settings)
            PhaseSummary("geoip", generated=len(groups)).log()

        if "srs" in settings.phases:
            report = await build_rule_sets(settings, categories, groups)
            PhaseSummary(
                "srs",
                generated=len(report.generated),
                skipped=len(report.skipped),
                failed=len(report.failed),
            ).log()
            if not report.ok:
                for failure in report.failed:
                    logger.error("{}", failure)
                logger.error(
                    "{} rule-set(s) failed to compile; not syncing", len(report.failed)
                )
                return 1

        if "sync" in settings.phases:
            published = await sync_artifacts(settings, store)
            if settings.dry_run:
                logger.info(
                    "[DRY] {} object(s) would be uploaded", len(published.changed)
                )
            PhaseSummary(
                "sync",
                uploaded=len(published.uploaded),
                skipped=published.unchanged,
            ).log()
    except GeoRulesError as exc:
        logger.error("{}: {}", type(exc).__name__, exc)
        return 1
    return 0
