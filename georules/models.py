from __future__ import annotations  # noqa: D100

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

RuleType = Literal["domain", "full", "keyword", "regexp"]
Family = Literal["v4", "v6"]


@dataclass(frozen=True)
class DomainRule:  # noqa: D101
    type: RuleType
    value: str
    attrs: tuple[str, ...] = ()

    def to_json(self) -> dict[str, object]:  # noqa: D102
        return {"type": self.type, "value": self.value, "attrs": list(self.attrs)}


@dataclass(frozen=True)
class Category:  # noqa: D101
    name: str
    rules: tuple[DomainRule, ...] = ()

    def to_json(self) -> dict[str, object]:  # noqa: D102
        return {"name": self.name, "rules": [rule.to_json() for rule in self.rules]}


@dataclass(frozen=True)
class CIDREntry:  # noqa: D101
    family: Family
    text: str


@dataclass(frozen=True)
class Group:  # noqa: D101
    name: str
    cidr4: tuple[str, ...] = ()
    cidr6: tuple[str, ...] = ()

    def to_json(self) -> dict[str, object]:  # noqa: D102
        return {"name": self.name, "cidr4": list(self.cidr4), "cidr6": list(self.cidr6)}


@dataclass(frozen=True)
class DomainFilter:
    """One domain-side variant: ``None`` keeps everything, ``cn`` / ``!cn`` filter on an attribute."""

    attribute: str | None = None
    negate: bool = False

    @classmethod
    def parse(cls, tag: str | None) -> DomainFilter:  # noqa: D102
        target = (tag or "").strip().lower()
        if not target:
            return cls()
        if target.startswith("!"):
            if not (attribute := target[1:].strip()):
                msg = f"negated filter needs an attribute: {tag!r}"
                raise ValueError(msg)
            return cls(attribute=attribute, negate=True)
        return cls(attribute=target)

    @property
    def tag(self) -> str | None:  # noqa: D102
        if self.attribute is None:
            return None
        return f"!{self.attribute}" if self.negate else self.attribute


@dataclass(frozen=True)
class FamilyFilter:
    """One IP-side variant: ``None`` keeps both families."""

    family: Family | None = None

    @classmethod
    def parse(cls, tag: str | None) -> FamilyFilter:  # noqa: D102
        match (tag or "").strip().lower():
            case "":
                return cls()
            case "v4" | "ipv4":
                return cls(family="v4")
            case "v6" | "ipv6":
                return cls(family="v6")
            case other:
                msg = f"unknown address family filter: {other!r}"
                raise ValueError(msg)

    @property
    def tag(self) -> str | None:  # noqa: D102
        return self.family


@dataclass(frozen=True)
class ManifestEntry:  # noqa: D101
    sha256: str
    size: int


@dataclass(frozen=True)
class Manifest:  # noqa: D101
    version: int = 1
    generated_at: int = 0
    entries: dict[str, ManifestEntry] = field(default_factory=dict)

    @classmethod
    def from_json(cls, body: object) -> Manifest:
        """Build from the wire shape; anything unrecognisable yields an empty manifest."""
        if not isinstance(body, dict):
            return cls()
        raw_entries = body.get("entries")
        entries: dict[str, ManifestEntry] = {}
        if isinstance(raw_entries, dict):
            for key, item in raw_entries.items():
                if not isinstance(item, dict):
                    continue
                sha256, size = item.get("sha256"), item.get("size")
                if isinstance(sha256, str) and isinstance(size, int):
                    entries[key] = ManifestEntry(sha256=sha256, size=size)
        generated_at = body.get("generatedAt")
        return cls(
            version=1,
            generated_at=generated_at if isinstance(generated_at, int) else 0,
            entries=entries,
        )

    def to_json(self) -> dict[str, object]:  # noqa: D102
        return {
            "version": self.version,
            "generatedAt": self.generated_at,
            "entries": {
                key: {"sha256": entry.sha256, "size": entry.size}
                for key, entry in self.entries.items()
            },
        }


@dataclass(frozen=True)
class PlanItem:  # noqa: D101
    path: Path
    key: str
    size: int
    sha256: str
    content_type: str
