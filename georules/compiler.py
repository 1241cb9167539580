import asyncio  # noqa: D100
import contextlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import anyio
import orjson
from loguru import logger

from georules.aggregate import aggregate_domain, aggregate_ip, envelope, variant_name
from georules.errors import CompileFailed
from georules.models import Category, DomainFilter, FamilyFilter, Group
from georules.pool import run_pool


@dataclass(frozen=True)
class RuleSetJob:
    """One category/group variant waiting to be compiled into ``<variant>.srs``."""

    variant: str
    rule: dict[str, Any]
    output_dir: anyio.Path

    @property
    def source(self) -> anyio.Path:  # noqa: D102
        return self.output_dir / f".{self.variant}.json"

    @property
    def output(self) -> anyio.Path:  # noqa: D102
        return self.output_dir / f"{self.variant}.srs"


@dataclass
class CompileReport:  # noqa: D101
    generated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[CompileFailed] = field(default_factory=list)

    @property
    def ok(self) -> bool:  # noqa: D102
        return not self.failed


def domain_jobs(
    categories: Iterable[Category],
    filters: Sequence[DomainFilter],
    output_dir: anyio.Path,
    report: CompileReport,
) -> list[RuleSetJob]:
    """Expand categories into variant jobs; empty variants land in ``report.skipped``."""
    jobs: list[RuleSetJob] = []
    for category in categories:
        for spec in filters:
            variant = variant_name(category.name, spec.tag)
            if (rule := aggregate_domain(category.rules, spec)) is None:
                report.skipped.append(variant)
                continue
            jobs.append(RuleSetJob(variant=variant, rule=rule, output_dir=output_dir))
    return jobs


def ip_jobs(  # noqa: D103
    groups: Iterable[Group],
    filters: Sequence[FamilyFilter],
    output_dir: anyio.Path,
    report: CompileReport,
) -> list[RuleSetJob]:
    jobs: list[RuleSetJob] = []
    for group in groups:
        for spec in filters:
            variant = variant_name(group.name, spec.tag)
            if (rule := aggregate_ip(group, spec)) is None:
                report.skipped.append(variant)
                continue
            jobs.append(RuleSetJob(variant=variant, rule=rule, output_dir=output_dir))
    return jobs


async def compile_rule_set(binary: str, source: anyio.Path, output: anyio.Path) -> None:
    """Run ``sing-box rule-set compile --output <output> <source>``."""
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "rule-set",
            "compile",
            "--output",
            str(output),
            str(source),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CompileFailed(output.stem, f"cannot run {binary}: {exc}") from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = (stderr or stdout).decode("utf-8", errors="replace").strip()
        raise CompileFailed(
            output.stem, detail or f"{binary} exited with status {process.returncode}"
        )


async def run_job(job: RuleSetJob, binary: str) -> str:  # noqa: D103
    await job.source.write_bytes(orjson.dumps(envelope(job.rule)))
    try:
        await compile_rule_set(binary, job.source, job.output)
    finally:
        with contextlib.suppress(OSError):
            await job.source.unlink()
    logger.debug("Compiled {}", job.output)
    return job.variant


async def compile_all(
    jobs: Sequence[RuleSetJob],
    binary: str,
    concurrency: int,
    report: CompileReport | None = None,
) -> CompileReport:
    """Compile every job; failures are collected, never propagated."""
    report = report or CompileReport()
    for output_dir in {job.output_dir for job in jobs}:
        await output_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "Compiling {} SRS files with concurrency={} ...", len(jobs), concurrency
    )
    results = await run_pool(
        [lambda job=job: run_job(job, binary) for job in jobs], concurrency
    )

    for job, result in zip(jobs, results, strict=True):
        match result:
            case CompileFailed():
                report.failed.append(result)
            case BaseException():
                report.failed.append(CompileFailed(job.variant, str(result)))
            case _:
                report.generated.append(job.variant)
    return report
