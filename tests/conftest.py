import stat
from pathlib import Path

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_sing_box(tmp_path: Path) -> Path:
    # argv: rule-set compile --output <out> <src>; the "compiled" file is the source
    return _script(tmp_path / "sing-box", 'cp "$5" "$4"\n')


@pytest.fixture
def make_script(tmp_path: Path):
    def _make(name: str, body: str) -> Path:
        return _script(tmp_path / name, body)

    return _make
