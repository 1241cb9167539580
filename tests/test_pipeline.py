from dataclasses import replace

import orjson
import pytest

from georules.config import Settings
from georules.decoder import DOMAIN, FULL, PLAIN
from georules.errors import SourceUnavailable
from georules.pipeline import (
    build_geoip,
    build_geosite,
    build_rule_sets,
    run,
    sync_artifacts,
)
from georules.source import load_database
from tests import protowire as pw
from tests.fakes import FakeStore

pytestmark = pytest.mark.anyio

BASE_URL = "https://rules.example.net"


@pytest.fixture
def settings(tmp_path, fake_sing_box):
    geosite = tmp_path / "geosite.dat"
    geosite.write_bytes(
        pw.geosite_list(
            pw.geosite("test", (pw.domain(FULL, "example.com"),)),
            pw.geosite(
                "google",
                (
                    pw.domain(DOMAIN, "google.cn", (pw.attribute("cn", bool_value=True),)),
                    pw.domain(DOMAIN, "google.com"),
                    pw.domain(PLAIN, "googleapis"),
                ),
            ),
        )
    )
    geoip = tmp_path / "geoip.dat"
    geoip.write_bytes(
        pw.geoip_list(
            pw.geoip("cn", (pw.cidr(bytes([1, 0, 1, 0]), 24), pw.cidr(bytes([0x24, 0x0E]) + bytes(14), 20))),
            pw.geoip("private", (pw.cidr(bytes([10, 0, 0, 0]), 8), pw.cidr(b"\x7f\x00", 8))),
        )
    )
    return Settings(
        root=tmp_path / "out",
        geosite_source=str(geosite),
        geoip_source=f"file://{geoip}",
        base_url=BASE_URL,
        sing_box_bin=str(fake_sing_box),
        srs_concurrency=3,
        r2_concurrency=2,
        phases=("geosite", "geoip", "srs", "sync"),
    )


async def test_geosite_end_to_end(settings):
    categories = await build_geosite(settings)

    assert [category.name for category in categories] == ["google", "test"]
    assert (settings.geosite_json_dir / "test.json").read_text(encoding="utf-8") == (
        '{"name":"test","rules":[{"type":"full","value":"example.com","attrs":[]}]}\n'
    )
    index = orjson.loads(settings.index_path.read_bytes())
    assert index["test"] == f"{BASE_URL}/geosite/test"
    assert list(index) == ["google", "test"]
    assert "| test | https://rules.example.net/geosite/test |" in settings.table_path.read_text()


async def test_geoip_end_to_end(settings):
    groups = await build_geoip(settings)

    assert orjson.loads((settings.geoip_json_dir / "private.json").read_bytes()) == {
        "name": "private",
        "cidr4": ["10.0.0.0/8"],
        "cidr6": [],
    }
    assert groups[0].cidr6 == ("240e::/20",)
    assert orjson.loads(settings.geoip_index_path.read_bytes()) == {
        "cn": f"{BASE_URL}/geoip/cn",
        "private": f"{BASE_URL}/geoip/private",
    }


async def test_rule_sets_from_json_written_by_an_earlier_run(settings):
    await build_geosite(settings)
    await build_geoip(settings)

    report = await build_rule_sets(settings)

    assert report.ok
    assert sorted(report.generated) == [
        "cn",
        "cn@v4",
        "cn@v6",
        "google",
        "google@!cn",
        "google@cn",
        "private",
        "private@v4",
        "test",
        "test@!cn",
    ]
    assert sorted(report.skipped) == ["private@v6", "test@cn"]
    compiled = orjson.loads((settings.srs_dir / "google@!cn.srs").read_bytes())
    assert compiled == {
        "version": 3,
        "rules": [{"domain_suffix": ["google.com"], "domain_keyword": ["googleapis"]}],
    }
    assert not (settings.srs_dir / "test@cn.srs").exists()


async def test_run_all_phases_and_sync(settings):
    store = FakeStore()

    assert await run(settings, store) == 0

    manifest = orjson.loads(store.objects["manifests/geosite.json"])
    keys = set(manifest["entries"])
    assert {"geosite/index.json", "geoip/index.json", "geosite/test.srs"} <= keys
    assert {"geosite-json/test.json", "geoip-json/cn.json", "geoip/cn@v6.srs"} <= keys

    store.puts.clear()
    assert await run(settings, store) == 0
    assert store.puts == []


async def test_run_exits_non_zero_when_a_compile_fails(settings, make_script):
    broken = make_script("broken-sing-box", "exit 1\n")
    store = FakeStore()

    status = await run(replace(settings, sing_box_bin=str(broken)), store)

    assert status == 1
    assert store.puts == []


async def test_run_exits_non_zero_on_malformed_database(settings, tmp_path):
    corrupt = tmp_path / "corrupt.dat"
    corrupt.write_bytes(b"\x0a\x7f\x01")

    status = await run(replace(settings, geosite_source=str(corrupt)), FakeStore())

    assert status == 1
    assert not settings.geosite_json_dir.exists()


async def test_missing_local_database(tmp_path):
    with pytest.raises(SourceUnavailable):
        await load_database(str(tmp_path / "missing.dat"))


async def test_duplicate_filter_spellings_compile_each_variant_once(settings):
    await build_geosite(settings)
    await build_geoip(settings)
    settings = replace(
        settings,
        domain_filters=(None, "cn", "CN", "!cn", "!CN"),
        ip_filters=(None, "v4", "ipv4"),
    )

    report = await build_rule_sets(settings)

    assert report.ok
    assert len(report.generated) == len(set(report.generated))
    assert "google@cn" in report.generated


async def test_dry_run_sync_reports_nothing_uploaded(settings):
    store = FakeStore()
    dry = replace(settings, dry_run=True, phases=("geosite", "geoip", "srs"))
    assert await run(dry, store) == 0

    report = await sync_artifacts(replace(dry, phases=("sync",)), store)

    assert report.changed
    assert report.uploaded == []
    assert store.puts == []
