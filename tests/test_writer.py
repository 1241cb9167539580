import anyio
import orjson
import pytest

from georules.models import Category, DomainRule, Group
from georules.writer import (
    load_categories,
    load_groups,
    markdown_table,
    write_categories,
    write_groups,
)

pytestmark = pytest.mark.anyio


async def test_write_categories_json_index_and_table(tmp_path):
    categories = [
        Category("apple", (DomainRule("full", "apple.com", ("cn",)),)),
        Category("test", (DomainRule("full", "example.com"),)),
    ]

    index = await write_categories(
        categories,
        anyio.Path(tmp_path / "json"),
        anyio.Path(tmp_path / "index.json"),
        anyio.Path(tmp_path / "data_files.md"),
        "https://example.net/geosite/",
    )

    assert (tmp_path / "json" / "test.json").read_text(encoding="utf-8") == (
        '{"name":"test","rules":[{"type":"full","value":"example.com","attrs":[]}]}\n'
    )
    assert index == {
        "apple": "https://example.net/geosite/apple",
        "test": "https://example.net/geosite/test",
    }
    assert (tmp_path / "index.json").read_bytes() == orjson.dumps(index) + b"\n"
    assert (tmp_path / "data_files.md").read_text(encoding="utf-8").splitlines() == [
        "| Name | Link |",
        "|------|------|",
        "| apple | https://example.net/geosite/apple |",
        "| test | https://example.net/geosite/test |",
    ]


async def test_write_groups(tmp_path):
    groups = [Group("cn", ("1.0.1.0/24",), ("2400:cb00::/32",)), Group("private")]

    await write_groups(
        groups,
        anyio.Path(tmp_path / "geoip-json"),
        anyio.Path(tmp_path / "geoip-index.json"),
        "https://example.net/geoip",
    )

    assert orjson.loads((tmp_path / "geoip-json" / "cn.json").read_bytes()) == {
        "name": "cn",
        "cidr4": ["1.0.1.0/24"],
        "cidr6": ["2400:cb00::/32"],
    }
    assert (tmp_path / "geoip-json" / "private.json").read_text() == (
        '{"name":"private","cidr4":[],"cidr6":[]}\n'
    )
    assert list(orjson.loads((tmp_path / "geoip-index.json").read_bytes())) == [
        "cn",
        "private",
    ]


async def test_written_json_loads_back_identically(tmp_path):
    categories = [
        Category(
            "google",
            (
                DomainRule("domain", "google.com", ("cn",)),
                DomainRule("keyword", "goog", ()),
            ),
        ),
        Category("Bing", (DomainRule("full", "bing.com"),)),
    ]
    categories.sort(key=lambda category: category.name.casefold())
    groups = [Group("cn", ("1.0.2.0/23", "10.0.0.0/8"), ("::1/128",))]
    await write_categories(
        categories,
        anyio.Path(tmp_path / "geosite-json"),
        anyio.Path(tmp_path / "index.json"),
        None,
        "https://example.net/geosite",
    )
    await write_groups(
        groups,
        anyio.Path(tmp_path / "geoip-json"),
        anyio.Path(tmp_path / "geoip-index.json"),
        "https://example.net/geoip",
    )

    assert await load_categories(anyio.Path(tmp_path / "geosite-json")) == categories
    assert await load_groups(anyio.Path(tmp_path / "geoip-json")) == groups


async def test_load_from_missing_directory(tmp_path):
    assert await load_categories(anyio.Path(tmp_path / "nope")) == []
    assert await load_groups(anyio.Path(tmp_path / "nope")) == []


def test_markdown_table_empty():
    assert markdown_table({}) == "| Name | Link |\n|------|------|\n"
