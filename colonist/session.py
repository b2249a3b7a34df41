"""
Sessions: isolated working copies of the colony's modules and their state.

Layout of the repository:
 - <root>/current -- id of the current session
 - <root>/<id>/modules/<module>/ -- working directory of one module within session <id>

Ids are ULIDs, so sorting them sorts sessions by creation time. Sessions are only ever
removed by an explicit `cleanup`
"""

import fcntl
import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from ulid import ULID

from colonist.cancel import CancelToken
from colonist.core import ModuleConfig
from colonist.errors import SessionBusy
from colonist.terraform import LOCAL_MARKER, OnLine, Runner, RunnerOutcome

logger = logging.getLogger(__name__)

LOCK_FILE = ".lock"
CURRENT_FILE = "current"

# never overwritten when refreshing a working copy from the module source
_preserved = shutil.ignore_patterns(".terraform", "*.tfstate", "*.tfstate.backup", LOCAL_MARKER)


def new_id() -> str:
    return str(ULID())


@dataclass(frozen=True)
class Session:
    id: str
    path: Path

    def module_path(self, name: str) -> Path:
        return self.path / "modules" / name

    def prepare(self, module: ModuleConfig) -> Path:
        """Refreshes the working copy of `module` from its source, keeping terraform data and state"""
        source = Path(module.source).expanduser()
        if not source.is_dir():
            raise FileNotFoundError(f"source of module {module.name} not found: {source}")
        dest = self.module_path(module.name)
        shutil.copytree(source, dest, ignore=_preserved, dirs_exist_ok=True)
        return dest

    def is_local(self, name: str) -> bool:
        return (self.module_path(name) / LOCAL_MARKER).exists()

    def init_local(self, module: ModuleConfig, runner: Runner, on_line: OnLine, token: CancelToken) -> RunnerOutcome:
        """Mirrors remote state into the working copy of `module`. Idempotent"""
        if self.is_local(module.name):
            logger.debug(f"session {self.id}: {module.name} is already local")
            return RunnerOutcome(True, 0, "already local")
        self.prepare(module)
        return runner.init_local(on_line, token)

    @contextmanager
    def lock(self) -> Iterator["Session"]:
        """Exclusive for the duration of an apply. Released by the OS if the process dies"""
        with open(self.path / LOCK_FILE, "w") as f:
            try:
                fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise SessionBusy(self.id) from None
            try:
                yield self
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)


class SessionRepo:
    def __init__(self, root: Path, id_factory: Callable[[], str] = new_id) -> None:
        self.root = Path(root)
        self.id_factory = id_factory
        self.root.mkdir(parents=True, exist_ok=True)

    def current_id(self) -> Optional[str]:
        marker = self.root / CURRENT_FILE
        if not marker.exists():
            return None
        return marker.read_text().strip() or None

    def _set_current(self, session_id: Optional[str]) -> None:
        (self.root / CURRENT_FILE).write_text(session_id or "")

    def get(self, session_id: str) -> Session:
        path = self.root / session_id
        if "/" in session_id or session_id.startswith(".") or not path.is_dir():
            raise KeyError(session_id)
        return Session(id=session_id, path=path)

    def current(self) -> Session:
        """The recorded current session, created if there is none"""
        session_id = self.current_id()
        if session_id is not None:
            try:
                return self.get(session_id)
            except KeyError:
                logger.warning(f"current session {session_id} is gone, starting a new one")
        return self.create()

    def create(self) -> Session:
        session_id = self.id_factory()
        path = self.root / session_id
        (path / "modules").mkdir(parents=True)
        self._set_current(session_id)
        logger.info(f"created session {session_id}")
        return Session(id=session_id, path=path)

    def resume(self, session_id: str) -> Session:
        session = self.get(session_id)
        self._set_current(session_id)
        logger.info(f"resumed session {session_id}")
        return session

    def sessions(self) -> list[Session]:
        return [
            Session(id=path.name, path=path)
            for path in sorted(self.root.iterdir())
            if path.is_dir()
        ]

    def cleanup(self, session_id: str) -> None:
        session = self.get(session_id)
        with session.lock():
            if (session.path / "modules").exists():
                shutil.rmtree(session.path / "modules")
        shutil.rmtree(session.path)
        if self.current_id() == session_id:
            self._set_current(None)
        logger.info(f"removed session {session_id}")
