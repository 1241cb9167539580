import pytest

from georules.errors import ConfigError
from georules.storage import WranglerStore, resolve_bucket, resolve_wrangler

pytestmark = pytest.mark.anyio


def test_resolve_bucket_prefers_explicit_name(tmp_path):
    (tmp_path / "wrangler.toml").write_text(
        '[[r2_buckets]]\nbinding = "B"\nbucket_name = "from-toml"\n', encoding="utf-8"
    )
    assert resolve_bucket(" explicit ", tmp_path) == "explicit"
    assert resolve_bucket(None, tmp_path) == "from-toml"


def test_resolve_bucket_missing(tmp_path):
    with pytest.raises(ConfigError):
        resolve_bucket("", tmp_path)


def test_resolve_wrangler_prefers_local_install(tmp_path):
    assert resolve_wrangler(tmp_path) == "wrangler"
    local = tmp_path / "node_modules" / ".bin" / "wrangler"
    local.parent.mkdir(parents=True)
    local.write_text("", encoding="utf-8")
    assert resolve_wrangler(tmp_path) == str(local)


async def test_wrangler_store_round_trip(tmp_path, make_script):
    # "r2 object get|put <bucket>/<key> --file <path> ..." against a directory
    bucket_dir = tmp_path / "bucket"
    bucket_dir.mkdir()
    wrangler = make_script(
        "wrangler",
        f'target="{bucket_dir}/$(echo "$5" | tr / _)"\n'
        'case "$4" in\n'
        '  get) [ -f "$target" ] || { echo "not found" >&2; exit 1; }; cp "$target" "$7";;\n'
        '  put) cp "$7" "$target";;\n'
        "esac\n",
    )
    source = tmp_path / "object.json"
    source.write_bytes(b'{"a":1}')
    store = WranglerStore("rules", tmp_path, binary=str(wrangler))

    assert await store.get("manifests/geosite.json") is None
    await store.put("manifests/geosite.json", source, "application/json")
    assert await store.get("manifests/geosite.json") == b'{"a":1}'


async def test_wrangler_put_failure_raises(tmp_path, make_script):
    wrangler = make_script("wrangler", 'echo "Authentication error" >&2\nexit 1\n')
    store = WranglerStore("rules", tmp_path, binary=str(wrangler))
    source = tmp_path / "x.srs"
    source.write_bytes(b"x")

    with pytest.raises(RuntimeError, match="Authentication error"):
        await store.put("geosite/x.srs", source, "application/octet-stream")
