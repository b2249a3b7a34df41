"""
Fakes standing in for terraform and the version repository, plus builders for configuration
"""

import threading
from pathlib import Path

from colonist.cancel import CancelToken
from colonist.core import BoundExecution, ModuleConfig
from colonist.errors import VersionResolutionFailed
from colonist.terraform import OnLine, RunnerOutcome


class FakeTerraform:
    """Stands in for the terraform binary of every module of a run. Records what was
    called, fails the modules listed in `failing`, optionally waits on a barrier"""

    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.barrier: threading.Barrier | None = None
        self.events: list[tuple[str, str]] = []
        self.variables: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def record(self, event: str, module: str) -> None:
        with self._lock:
            self.events.append((event, module))

    def steps(self, module: str) -> list[str]:
        return [event for event, name in self.events if name == module]

    def factory(self, workdir: Path, binary: str) -> "FakeRunner":
        return FakeRunner(self, workdir, binary)


class FakeRunner:
    def __init__(self, terraform: FakeTerraform, workdir: Path, binary: str) -> None:
        self.terraform = terraform
        self.workdir = workdir
        self.module = workdir.name
        self.binary = binary

    def initialized(self) -> bool:
        return (self.workdir / ".terraform").is_dir()

    def init(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        self.terraform.record("init", self.module)
        (self.workdir / ".terraform").mkdir()
        on_line("Terraform has been successfully initialized!")
        return RunnerOutcome(True, 0)

    def init_local(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        self.terraform.record("init_local", self.module)
        (self.workdir / ".colonist-local").touch()
        return RunnerOutcome(True, 0)

    def _operation(self, step: str, variables: dict[str, str], on_line: OnLine) -> RunnerOutcome:
        self.terraform.record(f"{step}:start", self.module)
        self.terraform.variables[self.module] = variables
        if self.terraform.barrier is not None:
            self.terraform.barrier.wait()
        on_line(f"{step} line 1")
        on_line(f"{step} line 2")
        self.terraform.record(f"{step}:end", self.module)
        if self.module in self.terraform.failing:
            return RunnerOutcome(False, 1, f"terraform {step} exited with 1")
        return RunnerOutcome(True, 0)

    def plan(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        return self._operation("plan", variables, on_line)

    def apply(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        return self._operation("apply", variables, on_line)


class FakeVersions:
    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.requested: list[str | None] = []

    def resolve_for(self, session, version: str | None) -> str:
        self.requested.append(version)
        if version in self.failing:
            raise VersionResolutionFailed(version, "download failed")
        return f"/opt/terraform/{version or 'default'}/terraform"


def make_module(root: Path, name: str, depends_on=(), variables=(), presets=None, **kwargs) -> ModuleConfig:
    source = root / name
    source.mkdir(parents=True, exist_ok=True)
    (source / "main.tf").write_text(f"# {name}\n")
    return ModuleConfig(
        name=name,
        source=str(source),
        depends_on=list(depends_on),
        variables=list(variables),
        presets=presets or {},
        **kwargs,
    )


def bound(module: ModuleConfig, **variables: str) -> BoundExecution:
    return BoundExecution(module=module, variables=variables)


