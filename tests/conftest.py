"""Pytest configuration and fixtures for all tests."""

import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture
def make_cli(tmp_path: Path) -> Callable[..., str]:
    """Write an executable Python script that stands in for the Claude CLI.

    The script body runs with ``sys``, ``os``, ``json`` and ``time`` imported.
    Returns the path to the script.
    """
    counter = {"n": 0}

    def _make(body: str, name: str = "") -> str:
        counter["n"] += 1
        path = tmp_path / (name or f"fake_claude_{counter['n']}")
        source = "\n".join(
            [
                f"#!{sys.executable}",
                "import json, os, sys, time",
                textwrap.dedent(body),
                "",
            ]
        )
        path.write_text(source, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make
