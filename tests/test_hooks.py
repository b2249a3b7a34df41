import os

import pytest

from colonist.errors import HookFailed
from colonist.hooks import run_hook


@pytest.fixture(autouse=True)
def isolated_environ():
    # run_hook writes to os.environ directly
    saved = dict(os.environ)
    os.environ["COLONIST_TEST_KEEP"] = "1"
    os.environ["COLONIST_TEST_DROP"] = "1"
    yield
    os.environ.clear()
    os.environ.update(saved)


def test_exports_are_applied(tmp_path):
    changed = run_hook("export TF_VAR_token=secret; export COLONIST_TEST_KEEP=2", tmp_path)
    assert changed == {"TF_VAR_token": "secret", "COLONIST_TEST_KEEP": "2"}
    assert os.environ["TF_VAR_token"] == "secret"
    assert os.environ["COLONIST_TEST_KEEP"] == "2"


def test_unset_is_applied(tmp_path):
    run_hook("unset COLONIST_TEST_DROP", tmp_path)
    assert "COLONIST_TEST_DROP" not in os.environ
    assert os.environ["COLONIST_TEST_KEEP"] == "1"


def test_values_with_newlines(tmp_path):
    run_hook("export COLONIST_TEST_PEM=\"$(printf 'a\\nb=c')\"", tmp_path)
    assert os.environ["COLONIST_TEST_PEM"] == "a\nb=c"


def test_runs_in_given_directory(tmp_path):
    run_hook("export COLONIST_TEST_DIR=\"$(pwd)\"", tmp_path)
    assert os.path.samefile(os.environ["COLONIST_TEST_DIR"], tmp_path)


def test_output_is_not_environment(tmp_path):
    changed = run_hook("echo hello", tmp_path)
    assert changed == {}


def test_failure(tmp_path):
    with pytest.raises(HookFailed) as e:
        run_hook("echo nope >&2; false", tmp_path)
    assert e.value.returncode == 1
    assert "nope" in e.value.output
    assert e.value.command == "echo nope >&2; false"
