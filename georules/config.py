"""Runtime settings.

Resolution order, later wins: dataclass defaults, an optional YAML file
(``GEORULES_CONFIG`` or ``./georules.yaml``), then environment variables (a ``.env``
file is loaded first).
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from georules.aggregate import DEFAULT_DOMAIN_FILTERS, DEFAULT_IP_FILTERS
from georules.errors import ConfigError
from georules.models import DomainFilter, FamilyFilter
from georules.source import GEOIP_URL, GEOSITE_URL

PHASES = ("geosite", "geoip", "srs", "sync")

_ENV_KEYS = {
    "GEOSITE_URL": "geosite_source",
    "GEO_DAT_PATH": "geosite_source",
    "GEOIP_URL": "geoip_source",
    "GEOIP_DAT_PATH": "geoip_source",
    "BASE_URL": "base_url",
    "SING_BOX_BIN": "sing_box_bin",
    "SRS_FILTERS": "domain_filters",
    "SRS_CONCURRENCY": "srs_concurrency",
    "R2_BUCKET": "r2_bucket",
    "R2_CONCURRENCY": "r2_concurrency",
    "MANIFEST_KEY": "manifest_key",
    "DRY_RUN": "dry_run",
    "GEORULES_PHASES": "phases",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}


@dataclass(frozen=True)
class Settings:  # noqa: D101
    root: Path = Path()
    geosite_source: str = GEOSITE_URL
    geoip_source: str = GEOIP_URL
    base_url: str = "https://direct.sleepstars.de"
    sing_box_bin: str = "sing-box"
    domain_filters: tuple[str | None, ...] = DEFAULT_DOMAIN_FILTERS
    ip_filters: tuple[str | None, ...] = DEFAULT_IP_FILTERS
    srs_concurrency: int = 6
    r2_bucket: str | None = None
    r2_concurrency: int = 6
    manifest_key: str = "manifests/geosite.json"
    dry_run: bool = False
    phases: tuple[str, ...] = ("geosite", "geoip", "srs")
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def dist_dir(self) -> Path:  # noqa: D102
        return self.root / "dist"

    @property
    def geosite_json_dir(self) -> Path:  # noqa: D102
        return self.dist_dir / "geosite-json"

    @property
    def geoip_json_dir(self) -> Path:  # noqa: D102
        return self.dist_dir / "geoip-json"

    @property
    def srs_dir(self) -> Path:  # noqa: D102
        return self.dist_dir / "srs"

    @property
    def srs_geoip_dir(self) -> Path:  # noqa: D102
        return self.dist_dir / "srs-geoip"

    @property
    def index_path(self) -> Path:  # noqa: D102
        return self.root / "index.json"

    @property
    def geoip_index_path(self) -> Path:  # noqa: D102
        return self.root / "geoip-index.json"

    @property
    def table_path(self) -> Path:  # noqa: D102
        return self.root / "data_files.md"

    # one entry per variant; each variant owns its output path
    def domain_specs(self) -> list[DomainFilter]:  # noqa: D102
        specs = (DomainFilter.parse(tag) for tag in self.domain_filters)
        return list(dict.fromkeys(specs))

    def ip_specs(self) -> list[FamilyFilter]:  # noqa: D102
        specs = (FamilyFilter.parse(tag) for tag in self.ip_filters)
        return list(dict.fromkeys(specs))


def _as_filters(
    name: str,
    value: Any,  # noqa: ANN401
    parse: Callable[[str], DomainFilter | FamilyFilter],
) -> tuple[str | None, ...]:
    """``"cn,!CN"`` or ``["cn", "!cn"]`` -> ``(None, "cn", "!cn")``; unfiltered is always first.

    Tags are compared after parsing, so spellings of one variant collapse to one entry.
    """
    items = value.split(",") if isinstance(value, str) else list(value or ())
    tags: dict[str, None] = {}
    for item in items:
        if item is None or not (raw := str(item).strip()):
            continue
        try:
            tag = parse(raw).tag
        except ValueError as exc:
            msg = f"{name}: {exc}"
            raise ConfigError(msg) from exc
        if tag is not None:
            tags[tag] = None
    return (None, *tags)


def _as_int(name: str, value: Any) -> int:  # noqa: ANN401
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be an integer, got {value!r}"
        raise ConfigError(msg) from exc
    if number < 1:
        msg = f"{name} must be at least 1, got {number}"
        raise ConfigError(msg)
    return number


def _as_bool(value: Any) -> bool:  # noqa: ANN401
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce(name: str, value: Any) -> Any:  # noqa: ANN401, PLR0911
    match name:
        case "root":
            return Path(value)
        case "domain_filters":
            return _as_filters(name, value, DomainFilter.parse)
        case "ip_filters":
            return _as_filters(name, value, FamilyFilter.parse)
        case "srs_concurrency" | "r2_concurrency":
            return _as_int(name, value)
        case "dry_run":
            return _as_bool(value)
        case "phases":
            items = value.split(",") if isinstance(value, str) else list(value)
            phases = tuple(str(item).strip().lower() for item in items if str(item).strip())
            if unknown := sorted(set(phases) - set(PHASES)):
                msg = f"unknown phase(s): {', '.join(unknown)}"
                raise ConfigError(msg)
            return phases
        case "r2_bucket" | "log_file":
            return str(value) if value else None
        case _:
            return str(value)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        msg = f"cannot read config file {path}: {exc}"
        raise ConfigError(msg) from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        msg = f"config file {path} must contain a mapping"
        raise ConfigError(msg)
    return parsed


def load_settings(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> Settings:
    """Build :class:`Settings` from YAML and environment; raises ``ConfigError``."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    if path is None and (configured := environ.get("GEORULES_CONFIG")):
        path = Path(configured)
    if path is None and Path("georules.yaml").is_file():
        path = Path("georules.yaml")

    known = {item.name for item in fields(Settings)}
    values: dict[str, Any] = {}
    if path is not None:
        for key, value in _read_yaml(path).items():
            if key not in known:
                msg = f"unknown setting {key!r} in {path}"
                raise ConfigError(msg)
            values[key] = value

    for env_key, name in _ENV_KEYS.items():
        if (value := environ.get(env_key)) not in (None, ""):
            values[name] = value

    return replace(
        Settings(), **{name: _coerce(name, value) for name, value in values.items()}
    )
