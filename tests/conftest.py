"""Shared fixtures: stub renderers standing in for the mandelbrot-* executables."""

from __future__ import annotations

import json
import os
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from fractalview import Platform, PrecisionTier, RendererTable

# Body snippets run inside the stub. ``args`` holds the argument vector.
WRITE_PNG = """
import PIL.Image
size = int(args[args.index("-s") + 1])
PIL.Image.new("RGB", (size, max(size // 2, 1)), (20, 40, 80)).save("contours.png")
"""

WRITE_NOTHING = """
print("done, but nothing written")
"""

FAIL = """
sys.stderr.write("mandelbrot: error in calculating points\\n")
sys.exit(3)
"""

WRITE_GARBAGE = """
Path("contours.png").write_bytes(b"definitely not a png")
"""

SLEEP = """
import time
time.sleep(30)
"""

SPAWN_AND_SLEEP = """
import subprocess, time
child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
Path(__file__).with_name("child.pid").write_text(str(child.pid))
time.sleep(30)
"""

WRITE_PNG_AND_SCRATCH = WRITE_PNG + """
Path("scratch/deeper").mkdir(parents=True)
Path("scratch/deeper/contours.csv").write_text("0, 0, 1\\n")
Path("contours.plt").write_text("reset\\n")
"""


@pytest.fixture()
def calls_log(tmp_path: Path) -> Path:
    return tmp_path / "calls.jsonl"


def read_calls(path: Path) -> list[dict]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


@pytest.fixture()
def make_renderer(tmp_path: Path, calls_log: Path) -> Callable[[str], Path]:
    """Write a stub executable for every precision tier and return their directory."""

    def factory(body: str) -> Path:
        renderer_dir = tmp_path / "renderer"
        renderer_dir.mkdir(exist_ok=True)
        script = renderer_dir / "stub_renderer.py"
        script.write_text(
            "import json, os, sys\n"
            "from pathlib import Path\n"
            "args = sys.argv[2:]\n"
            f"with open({str(calls_log)!r}, 'a') as fh:\n"
            "    fh.write(json.dumps({'tier': sys.argv[1], 'args': args, 'cwd': os.getcwd()}) + '\\n')\n"
            + textwrap.dedent(body)
        )
        table = RendererTable.default()
        for tier in PrecisionTier:
            exe = renderer_dir / table.resolve(tier, Platform.POSIX)
            exe.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" {tier.value} "$@"\n')
            exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return renderer_dir

    return factory


@pytest.fixture()
def work_root(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture()
def capture_dir(tmp_path: Path) -> Path:
    return tmp_path / "captured"


posix_only = pytest.mark.skipif(os.name == "nt", reason="stub renderers are shell scripts")
