"""
A colony is a collection of terraform modules, based on configuration.

Modules are invoked with variables, either given by the user at runtime or preset in the
configuration; a module together with its resolved variables is a bound execution. Executions
depend on each other as their modules do, and are planned or applied concurrently within
the current session.

The `Colony` object is the explicit context of one invocation: it owns the validated config,
the session repository and the version repository, and hands them to the binder, graph and
engine
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from colonist.binder import ExecutionSet, bind, executions
from colonist.core import BoundExecution, ColonyConfig, UserVariables
from colonist.engine import Engine, Run
from colonist.graph import ExecutionGraph, build_graph
from colonist.hooks import run_hook
from colonist.session import Session, SessionRepo, new_id
from colonist.terraform import LocalTerraform, RunnerFactory
from colonist.versions import VersionRepo

logger = logging.getLogger(__name__)

SESSION_REPO = ".tfcolony"


class Colony:
    def __init__(
        self,
        config: ColonyConfig,
        runner_factory: RunnerFactory = LocalTerraform,
        versions: Optional[VersionRepo] = None,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        logger.debug("initializing colony")
        self.config = config.check()
        # the whole dependency graph must be sound, regardless of any later module filter
        build_graph([BoundExecution(module=m, variables={}) for m in self.config.modules])

        self.sessions = SessionRepo(Path(self.config.session_repo_dir) / SESSION_REPO, id_factory)
        if versions is None:
            versions = VersionRepo(Path(self.config.versions_dir) if self.config.versions_dir else None)
        self.versions = versions
        self.runner_factory = runner_factory

        if self.config.hooks.startup:
            session = self.session()
            for hook in self.config.hooks.startup:
                run_hook(hook, session.path)

    # sessions

    def session(self) -> Session:
        return self.sessions.current()

    def new_session(self) -> Session:
        return self.sessions.create()

    def resume(self, session_id: str) -> Session:
        return self.sessions.resume(session_id)

    def teardown(self) -> None:
        """Removes the current session and its working copy"""
        session_id = self.sessions.current_id()
        if session_id is None:
            logger.info("no current session to tear down")
            return
        self.sessions.cleanup(session_id)

    # executions

    def executions(self, module_names: Optional[Iterable[str]], user_vars: UserVariables) -> ExecutionSet:
        return executions(self.config, module_names, user_vars)

    def bind(self, module_names: Optional[Iterable[str]], user_vars: UserVariables) -> list[BoundExecution]:
        return bind(self.executions(module_names, user_vars), user_vars)

    def graph(self, user_vars: UserVariables) -> ExecutionGraph:
        return build_graph(self.bind(None, user_vars))

    def engine(self, session: Optional[Session] = None) -> Engine:
        return Engine(
            session=session or self.session(),
            versions=self.versions,
            runner_factory=self.runner_factory,
            terraform_version=self.config.terraform_version,
            max_parallel=self.config.max_parallel,
        )

    def plan(
        self,
        module_names: Optional[Iterable[str]] = None,
        user_vars: Optional[UserVariables] = None,
        detach: bool = False,
    ) -> Run:
        """Plans every execution in parallel, ignoring dependencies"""
        logger.debug("running plan")
        bound = self.bind(module_names, user_vars or UserVariables.none())
        return self.engine().plan_all(bound, detach=detach)

    def apply(
        self,
        module_names: Optional[Iterable[str]] = None,
        user_vars: Optional[UserVariables] = None,
    ) -> Run:
        """Applies every execution in dependency order. With explicit module names, the named
        modules are applied concurrently with no ordering whatsoever"""
        logger.debug("running apply")
        user_vars = user_vars or UserVariables.none()
        if module_names is not None:
            bound = self.bind(module_names, user_vars)
            return self.engine().apply_subset(bound)
        return self.engine().apply_graph(self.graph(user_vars))
