from collections.abc import Sequence  # noqa: D100
from typing import Any

import polars as pl

from georules.models import DomainFilter, DomainRule, FamilyFilter, Group

DEFAULT_DOMAIN_FILTERS: tuple[str | None, ...] = (None, "cn", "!cn")
DEFAULT_IP_FILTERS: tuple[str | None, ...] = (None, "v4", "v6")

# rule type -> headless rule field, in emission order
SINGBOX_BUCKETS: tuple[tuple[str, str], ...] = (
    ("full", "domain"),
    ("domain", "domain_suffix"),
    ("keyword", "domain_keyword"),
    ("regexp", "domain_regex"),
)

_RULE_SCHEMA = {"type": pl.String, "value": pl.String, "attrs": pl.List(pl.String)}


def variant_name(name: str, tag: str | None) -> str:  # noqa: D103
    return f"{name}@{tag}" if tag else name


def rules_frame(rules: Sequence[DomainRule]) -> pl.DataFrame:  # noqa: D103
    return pl.DataFrame(
        {
            "type": [rule.type for rule in rules],
            "value": [rule.value for rule in rules],
            "attrs": [list(rule.attrs) for rule in rules],
        },
        schema=_RULE_SCHEMA,
    )


def select_rules(frame: pl.DataFrame, spec: DomainFilter) -> pl.DataFrame:
    """Keep rows that carry the attribute, or lack it when ``spec.negate`` is set."""
    if spec.attribute is None:
        return frame
    has_key = (
        pl.col("attrs")
        .list.eval(pl.element().str.to_lowercase())
        .list.contains(spec.attribute.lower())
    )
    return frame.filter(~has_key if spec.negate else has_key)


def aggregate_domain(
    rules: Sequence[DomainRule], spec: DomainFilter
) -> dict[str, list[str]] | None:
    """Bucket the selected rules into a sing-box headless rule.

    Returns ``None`` when nothing survives the filter, meaning the variant is skipped.
    """
    selected = select_rules(rules_frame(rules), spec)
    if selected.height == 0:
        return None

    grouped = selected.group_by("type", maintain_order=True).agg(pl.col("value"))
    buckets = {block["type"]: block["value"] for block in grouped.iter_rows(named=True)}

    headless = {
        field: buckets[rule_type]
        for rule_type, field in SINGBOX_BUCKETS
        if buckets.get(rule_type)
    }
    return headless or None


def aggregate_ip(group: Group, spec: FamilyFilter) -> dict[str, list[str]] | None:  # noqa: D103
    ip_cidr: list[str] = []
    if spec.family in (None, "v4"):
        ip_cidr.extend(group.cidr4)
    if spec.family in (None, "v6"):
        ip_cidr.extend(group.cidr6)
    return {"ip_cidr": ip_cidr} if ip_cidr else None


def envelope(rule: dict[str, Any]) -> dict[str, Any]:  # noqa: D103
    return {"version": 3, "rules": [rule]}
