"""Pytest fixtures: prompt file and input directory under tmp_path."""

from pathlib import Path

import pytest


@pytest.fixture
def prompt_file(tmp_path: Path) -> Path:
    path = tmp_path / "prompt.txt"
    path.write_text("Describe the lighting and composition.", encoding="utf-8")
    return path


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    path = tmp_path / "input"
    path.mkdir()
    return path
