import ipaddress  # noqa: D100
import re
from collections.abc import Iterable

from loguru import logger

from georules.decoder import (
    DOMAIN,
    FULL,
    PLAIN,
    REGEX,
    AttributeRecord,
    DomainRecord,
    IPEntry,
    SiteEntry,
)
from georules.errors import UnsupportedAddressLength
from georules.models import Category, CIDREntry, DomainRule, Group, RuleType

RULE_TYPE_MAP: dict[int, RuleType] = {
    DOMAIN: "domain",
    FULL: "full",
    PLAIN: "keyword",
    REGEX: "regexp",
}

_IPV4_LENGTH = 4
_IPV6_LENGTH = 16
_DIGITS = re.compile(r"(\d+)")


def rule_type(source_type: int) -> RuleType:  # noqa: D103
    return RULE_TYPE_MAP.get(source_type, "domain")


def text_key(text: str) -> tuple[str, str]:  # noqa: D103
    return text.casefold(), text


def natural_key(text: str) -> tuple[tuple[int | str, ...], str]:
    """Order digit runs by value, so ``1.2.3.0/8`` sorts before ``1.2.3.0/24``."""
    parts = tuple(
        int(token) if index % 2 else token.casefold()
        for index, token in enumerate(_DIGITS.split(text))
    )
    return parts, text


def extract_attrs(attributes: Iterable[AttributeRecord]) -> tuple[str, ...]:  # noqa: D103
    attrs: list[str] = []
    for attribute in attributes:
        if not attribute.key:
            continue
        if attribute.bool_value is not None:
            if attribute.bool_value:
                attrs.append(attribute.key)
        elif attribute.int_value is not None:
            attrs.append(f"{attribute.key}={attribute.int_value}")
        else:
            attrs.append(attribute.key)
    return tuple(sorted(attrs, key=text_key))


def normalize_rule(record: DomainRecord) -> DomainRule:  # noqa: D103
    return DomainRule(
        type=rule_type(record.type),
        value=record.value.strip(),
        attrs=extract_attrs(record.attributes),
    )


def rule_key(rule: DomainRule) -> tuple[tuple[str, str], tuple[str, str], tuple[str, ...]]:  # noqa: D103
    return text_key(rule.type), text_key(rule.value), rule.attrs


def sort_rules(rules: Iterable[DomainRule]) -> tuple[DomainRule, ...]:  # noqa: D103
    return tuple(sorted(rules, key=rule_key))


def normalize_categories(entries: Iterable[SiteEntry]) -> list[Category]:
    """Map decoded sites to categories, sorted by name with rules in canonical order.

    Entries with a blank name are dropped. Identical rules are kept.
    """
    categories = [
        Category(
            name=name,
            rules=sort_rules(normalize_rule(record) for record in entry.domains),
        )
        for entry in entries
        if (name := entry.country_code.strip())
    ]
    return sorted(categories, key=lambda category: text_key(category.name))


def ipv4_text(raw: bytes) -> str:  # noqa: D103
    return str(ipaddress.IPv4Address(raw))


def ipv6_text(raw: bytes) -> str:
    """Eight hex words, first longest run of two or more zero words collapsed to ``::``."""
    words = [(raw[i] << 8) | raw[i + 1] for i in range(0, _IPV6_LENGTH, 2)]

    best_start, best_len = -1, 0
    run_start, run_len = -1, 0
    for index, word in enumerate([*words, 1]):
        if word == 0:
            if run_len == 0:
                run_start = index
            run_len += 1
            continue
        if run_len > best_len:
            best_start, best_len = run_start, run_len
        run_len = 0

    hexed = [f"{word:x}" for word in words]
    if best_len < 2:  # noqa: PLR2004
        return ":".join(hexed)
    head = ":".join(hexed[:best_start])
    tail = ":".join(hexed[best_start + best_len :])
    return f"{head}::{tail}"


def to_cidr(raw: bytes, prefix: int) -> CIDREntry:  # noqa: D103
    match len(raw):
        case 4:
            return CIDREntry(family="v4", text=f"{ipv4_text(raw)}/{prefix}")
        case 16:
            return CIDREntry(family="v6", text=f"{ipv6_text(raw)}/{prefix}")
        case length:
            raise UnsupportedAddressLength(length)


def normalize_group(entry: IPEntry, name: str) -> Group:  # noqa: D103
    cidr4: list[str] = []
    cidr6: list[str] = []
    for record in entry.cidrs:
        try:
            cidr = to_cidr(record.ip, record.prefix)
        except UnsupportedAddressLength as exc:
            logger.warning("{}: skipping CIDR: {}", name, exc)
            continue
        (cidr4 if cidr.family == "v4" else cidr6).append(cidr.text)
    return Group(
        name=name,
        cidr4=tuple(sorted(cidr4, key=natural_key)),
        cidr6=tuple(sorted(cidr6, key=text_key)),
    )


def normalize_groups(entries: Iterable[IPEntry]) -> list[Group]:  # noqa: D103
    groups = [
        normalize_group(entry, name)
        for entry in entries
        if (name := entry.country_code.strip())
    ]
    return sorted(groups, key=lambda group: text_key(group.name))
