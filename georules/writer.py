from collections.abc import Sequence  # noqa: D100
from typing import Any

import anyio
import orjson
from loguru import logger

from georules.models import Category, DomainRule, Group
from georules.normalize import natural_key, sort_rules, text_key


async def write_json(path: anyio.Path, data: Any) -> None:  # noqa: ANN401, D103
    async with await path.open("wb") as handle:
        await handle.write(orjson.dumps(data) + b"\n")


def index_map(names: Sequence[str], base_url: str) -> dict[str, str]:  # noqa: D103
    base = base_url.rstrip("/")
    return {name: f"{base}/{name}" for name in names}


def markdown_table(index: dict[str, str]) -> str:  # noqa: D103
    lines = ["| Name | Link |", "|------|------|"]
    lines.extend(f"| {name} | {link} |" for name, link in index.items())
    return "\n".join(lines) + "\n"


async def write_categories(
    categories: Sequence[Category],
    json_dir: anyio.Path,
    index_path: anyio.Path,
    table_path: anyio.Path | None,
    base_url: str,
) -> dict[str, str]:
    """Write ``<name>.json`` per category plus the index and the Markdown table.

    ``categories`` must already be in canonical order; the index keeps that order.
    """
    await json_dir.mkdir(parents=True, exist_ok=True)
    for category in categories:
        await write_json(json_dir / f"{category.name}.json", category.to_json())

    index = index_map([category.name for category in categories], base_url)
    await write_json(index_path, index)
    if table_path is not None:
        await table_path.write_text(markdown_table(index), encoding="utf-8")

    logger.info("Wrote {} category files to {}", len(categories), json_dir)
    return index


async def write_groups(
    groups: Sequence[Group],
    json_dir: anyio.Path,
    index_path: anyio.Path,
    base_url: str,
) -> dict[str, str]:
    """Write ``<name>.json`` per group plus the sorted group index."""
    await json_dir.mkdir(parents=True, exist_ok=True)
    for group in groups:
        await write_json(json_dir / f"{group.name}.json", group.to_json())

    index = index_map([group.name for group in groups], base_url)
    await write_json(index_path, index)

    logger.info("Wrote {} group files to {}", len(groups), json_dir)
    return index


async def _read_documents(json_dir: anyio.Path) -> list[dict[str, Any]]:
    if not await json_dir.exists():
        return []
    paths = [path async for path in json_dir.glob("*.json")]
    paths.sort(key=lambda path: text_key(path.stem))

    documents: list[dict[str, Any]] = []
    for path in paths:
        body = orjson.loads(await path.read_bytes())
        if isinstance(body, dict):
            body.setdefault("name", path.stem)
            documents.append(body)
    return documents


async def load_categories(json_dir: anyio.Path) -> list[Category]:  # noqa: D103
    return [
        Category(
            name=str(body["name"]),
            rules=sort_rules(
                DomainRule(
                    type=rule.get("type", "domain"),
                    value=str(rule.get("value", "")),
                    attrs=tuple(str(attr) for attr in rule.get("attrs") or ()),
                )
                for rule in body.get("rules") or ()
            ),
        )
        for body in await _read_documents(json_dir)
    ]


async def load_groups(json_dir: anyio.Path) -> list[Group]:  # noqa: D103
    return [
        Group(
            name=str(body["name"]),
            cidr4=tuple(sorted(map(str, body.get("cidr4") or ()), key=natural_key)),
            cidr6=tuple(sorted(map(str, body.get("cidr6") or ()), key=text_key)),
        )
        for body in await _read_documents(json_dir)
    ]
