from pathlib import Path

import pytest

from colonist.config import find_config, load_config, logging_config_for
from colonist.errors import ConfigInvalid

CONFIG = """\
terraform_version: 1.5.7
session_repo_dir: state
max_parallel: 4
hooks:
  startup:
    - export AWS_PROFILE=prod
modules:
  - name: net
    source: modules/net
    variables:
      - name: region
        required: true
        values: [eu-west-1, us-east-1]
    presets:
      region: eu-west-1
  - name: db
    source: modules/db
    depends_on: [net]
    terraform_version: 1.6.0
    variables:
      - name: size
        flag: db-size
      - name: replicas
        values: [1, 3]
"""


def write(tmp_path: Path, content: str, name: str = "colony.yaml") -> Path:
    path = tmp_path / name
    path.write_text(content)
    return path


def test_load(tmp_path):
    config = load_config(write(tmp_path, CONFIG))
    assert [m.name for m in config.modules] == ["net", "db"]
    assert config.terraform_version == "1.5.7"
    assert config.max_parallel == 4
    assert config.hooks.startup == ["export AWS_PROFILE=prod"]
    # relative to the config file
    assert Path(config.session_repo_dir) == tmp_path / "state"
    assert Path(config.module("net").source) == tmp_path / "modules" / "net"

    db = config.module("db")
    assert db.terraform_version == "1.6.0"
    assert db.variable("replicas").values == ["1", "3"]
    assert db.variable("size").flag_name == "db-size"
    assert config.flags() == {"region": ["region"], "db-size": ["size"], "replicas": ["replicas"]}


def test_session_repo_dir_defaults_to_config_dir(tmp_path):
    config = load_config(write(tmp_path, "modules:\n  - name: net\n    source: net\n"))
    assert Path(config.session_repo_dir) == tmp_path


def test_find(tmp_path):
    with pytest.raises(ConfigInvalid):
        find_config(tmp_path)
    hidden = write(tmp_path, CONFIG, ".colony.yaml")
    assert find_config(tmp_path) == hidden
    preferred = write(tmp_path, CONFIG, "colony.yml")
    assert find_config(tmp_path) == preferred


@pytest.mark.parametrize(
    "content, problem",
    [
        ["- just\n- a list\n", "mapping"],
        ["modules: [\n", "unable to read"],
        ["modules:\n  - name: net\n", "source"],
        ["modules:\n  - {name: a, source: a}\n  - {name: a, source: b}\n", "declared twice"],
        ["modules:\n  - {name: a, source: a, depends_on: [b]}\n", "unknown module b"],
        ["modules:\n  - {name: a, source: a, depends_on: [a]}\n", "depends on itself"],
        ["modules:\n  - {name: a, source: a, presets: {x: 1}}\n", "undeclared variable x"],
        [
            "modules:\n  - {name: a, source: a, variables: [{name: x, values: [p, q]}], presets: {x: r}}\n",
            "not in",
        ],
        ["max_parallel: 0\nmodules: []\n", "max_parallel"],
    ],
)
def test_invalid(tmp_path, content, problem):
    with pytest.raises(ConfigInvalid) as e:
        load_config(write(tmp_path, content))
    assert problem in str(e.value)


def test_all_problems_reported_at_once(tmp_path):
    content = "modules:\n  - {name: a, source: a, depends_on: [b]}\n  - {name: c, source: c, depends_on: [d]}\n"
    with pytest.raises(ConfigInvalid) as e:
        load_config(write(tmp_path, content))
    assert len(e.value.errors) == 2


def test_missing_file(tmp_path):
    with pytest.raises(ConfigInvalid):
        load_config(tmp_path / "nope.yaml")


def test_logging_levels():
    assert logging_config_for()["loggers"]["colonist"]["level"] == "WARNING"
    assert logging_config_for(verbose=True)["loggers"]["colonist"]["level"] == "INFO"
    assert logging_config_for(verbose=True, trace=True)["loggers"]["colonist"]["level"] == "DEBUG"
