from pathlib import Path

import pytest
from helpers import FakeTerraform, FakeVersions, make_module

from colonist.core import ColonyConfig, VariableSpec
from colonist.session import SessionRepo


@pytest.fixture
def sources(tmp_path: Path) -> Path:
    return tmp_path / "modules"


@pytest.fixture
def colony_config(tmp_path: Path, sources: Path) -> ColonyConfig:
    """net <- db <- app, every variable resolvable without user input"""
    region = VariableSpec(name="region", required=True, values=["eu-west-1", "us-east-1"])
    return ColonyConfig(
        modules=[
            make_module(sources, "net", variables=[region], presets={"region": "eu-west-1"}),
            make_module(sources, "db", depends_on=["net"], variables=[VariableSpec(name="size")]),
            make_module(sources, "app", depends_on=["db"]),
        ],
        session_repo_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def terraform() -> FakeTerraform:
    return FakeTerraform()


@pytest.fixture
def versions() -> FakeVersions:
    return FakeVersions()


@pytest.fixture
def session(tmp_path: Path):
    return SessionRepo(tmp_path / "sessions").current()
