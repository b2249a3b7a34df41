"""
Narrow interface to the terraform binary. The engine only ever talks to a `Runner`, bound
to one module's working directory and one resolved binary; `LocalTerraform` is the
implementation shelling out via subprocess. Terraform's state and plan formats are
never inspected here
"""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from colonist.cancel import CancelToken

logger = logging.getLogger(__name__)

OnLine = Callable[[str], None]


@dataclass(frozen=True)
class RunnerOutcome:
    ok: bool
    returncode: Optional[int]
    detail: str = ""


class Runner(Protocol):
    def initialized(self) -> bool: ...

    def init(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome: ...

    def init_local(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome: ...

    def plan(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome: ...

    def apply(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome: ...


RunnerFactory = Callable[[Path, str], Runner]  # (working directory, binary path)

LOCAL_MARKER = ".colonist-local"
BACKEND_OVERRIDE = "colonist_backend_override.tf"
BACKEND_OVERRIDE_CONTENT = """\
terraform {
  backend "local" {
    path = "terraform.tfstate"
  }
}
"""


def var_args(variables: dict[str, str]) -> list[str]:
    return [arg for name, value in variables.items() for arg in ("-var", f"{name}={value}")]


def _watch(proc: subprocess.Popen, token: CancelToken) -> None:
    while proc.poll() is None:
        if token.wait_forced(0.2):
            logger.warning(f"terminating terraform process {proc.pid}")
            proc.terminate()
            return


class LocalTerraform:
    def __init__(self, workdir: Path, binary: str, env: Optional[dict[str, str]] = None) -> None:
        self.workdir = Path(workdir)
        self.binary = binary
        self.env = {**os.environ, "TF_IN_AUTOMATION": "1", "TF_INPUT": "0", **(env or {})}

    def initialized(self) -> bool:
        return (self.workdir / ".terraform").is_dir()

    def is_local(self) -> bool:
        return (self.workdir / LOCAL_MARKER).exists()

    def init(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        return self._stream(["init", "-input=false", "-no-color"], on_line, token)

    def plan(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        return self._stream(["plan", "-input=false", "-no-color", *var_args(variables)], on_line, token)

    def apply(self, variables: dict[str, str], on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        args = ["apply", "-input=false", "-no-color", "-auto-approve", *var_args(variables)]
        return self._stream(args, on_line, token)

    def init_local(self, on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        """Mirrors the remote state into the working directory and switches it to a local backend,
        so that later commands change the local copy only. No-op when already done"""
        if self.is_local():
            return RunnerOutcome(True, 0, "already local")
        if not self.initialized():
            outcome = self.init(on_line, token)
            if not outcome.ok:
                return outcome

        outcome, state = self._capture(["state", "pull"], token)
        if not outcome.ok:
            return outcome
        if state.strip():
            (self.workdir / "terraform.tfstate").write_text(state)
        (self.workdir / BACKEND_OVERRIDE).write_text(BACKEND_OVERRIDE_CONTENT)
        on_line("switched to a local copy of the remote state")

        outcome = self._stream(["init", "-input=false", "-no-color", "-reconfigure"], on_line, token)
        if outcome.ok:
            (self.workdir / LOCAL_MARKER).touch()
        return outcome

    def _spawn(self, args: list[str], **kwargs) -> subprocess.Popen:
        logger.debug(f"running {self.binary} {' '.join(args)} in {self.workdir}")
        return subprocess.Popen(
            [self.binary, *args],
            cwd=self.workdir,
            env=self.env,
            text=True,
            **kwargs,
        )

    def _finish(self, args: list[str], proc: subprocess.Popen, token: CancelToken) -> RunnerOutcome:
        returncode = proc.wait()
        if returncode == 0:
            return RunnerOutcome(True, 0)
        if token.forced:
            return RunnerOutcome(False, returncode, "terminated on cancellation")
        return RunnerOutcome(False, returncode, f"terraform {args[0]} exited with {returncode}")

    def _stream(self, args: list[str], on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        try:
            proc = self._spawn(args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, bufsize=1)
        except OSError as e:
            return RunnerOutcome(False, None, repr(e))
        threading.Thread(target=_watch, args=(proc, token), daemon=True).start()
        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                on_line(line.rstrip("\n"))
        return self._finish(args, proc, token)

    def _capture(self, args: list[str], token: CancelToken) -> tuple[RunnerOutcome, str]:
        try:
            proc = self._spawn(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            return RunnerOutcome(False, None, repr(e)), ""
        threading.Thread(target=_watch, args=(proc, token), daemon=True).start()
        stdout, stderr = proc.communicate()
        outcome = self._finish(args, proc, token)
        if not outcome.ok and stderr.strip():
            outcome = RunnerOutcome(False, outcome.returncode, stderr.strip().splitlines()[-1])
        return outcome, stdout
