"""
Command line interface of colonist

Example:
```
colony plan --region=eu-west-1
colony plan net db --detach
colony apply --config=envs/prod.yaml --verbose
```

Every variable declared by a module is accepted as a `--<flag>=<value>` option of `plan`
and `apply`
"""

import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import Optional

import fire

from colonist.colony import Colony
from colonist.config import find_config, load_config, logging_config_for
from colonist.core import ResultStatus, UserVariables
from colonist.engine import Run
from colonist.errors import ColonyError

logger = logging.getLogger("colonist.cli")


def _drain(run: Run) -> None:
    for line in run.progress:
        print(line, flush=True)


def _module_names(modules: tuple) -> Optional[list[str]]:
    # fire parses a module named `1` or `true` into a number or a bool
    return [str(m).lower() if isinstance(m, bool) else str(m) for m in modules] or None


def follow(run: Run) -> bool:
    """Prints progress until the run is over, then a summary. True if nothing failed"""
    try:
        _drain(run)
    except KeyboardInterrupt:
        print("interrupted, waiting for running executions (interrupt again to terminate them)", file=sys.stderr)
        run.cancel()
        try:
            _drain(run)
        except KeyboardInterrupt:
            run.cancel(force=True)
            _drain(run)

    results = run.wait()
    print()
    for result in sorted(results, key=lambda r: r.name):
        line = f"{result.name}: {result.status.value}"
        if result.cause:
            line += f" ({result.cause})"
        print(line)
    return all(result.status != ResultStatus.failed for result in results)


class ColonyCli:
    """A tool for managing multiple terraform modules"""

    def __init__(self, config: Optional[str] = None, verbose: bool = False, trace: bool = False) -> None:
        logging.config.dictConfig(logging_config_for(verbose=verbose, trace=trace))
        self._config_path = Path(config) if config else None
        self._colony: Optional[Colony] = None

    @property
    def colony(self) -> Colony:
        if self._colony is None:
            path = self._config_path or find_config()
            self._colony = Colony(load_config(path))
        return self._colony

    def _user_vars(self, variables: dict) -> UserVariables:
        flags = {
            flag.replace("-", "_"): names
            for flag, names in self.colony.config.flags().items()
        }
        values: dict[str, str] = {}
        for key, value in variables.items():
            names = flags.get(key.replace("-", "_"))
            if names is None:
                raise ColonyError(f"unknown variable flag --{key}")
            for name in names:
                values[name] = str(value)
        return UserVariables.of(values)

    def plan(self, *modules: str, detach: bool = False, **variables) -> None:
        """Plans the given modules, or all of them, in parallel"""
        run = self.colony.plan(_module_names(modules), self._user_vars(variables), detach=detach)
        if not follow(run):
            sys.exit(1)

    def apply(self, *modules: str, **variables) -> None:
        """Applies the given modules concurrently, or all of them in dependency order"""
        run = self.colony.apply(_module_names(modules), self._user_vars(variables))
        if not follow(run):
            sys.exit(1)

    def graph(self, dot: bool = False, **variables) -> None:
        """Prints the execution graph and its batches as json, or as graphviz source with --dot"""
        graph = self.colony.graph(self._user_vars(variables))
        if dot:
            print(graph.to_dot())
        else:
            print(json.dumps(graph.serialise(), indent=2))

    def sessions(self) -> None:
        """Lists sessions, oldest first. The current one is marked with *"""
        current = self.colony.sessions.current_id()
        for session in self.colony.sessions.sessions():
            print(f"{'*' if session.id == current else ' '} {session.id}")

    def new_session(self) -> None:
        print(self.colony.new_session().id)

    def resume(self, session_id: str) -> None:
        try:
            print(self.colony.resume(session_id).id)
        except KeyError:
            raise ColonyError(f"no such session {session_id}") from None

    def cleanup(self, session_id: Optional[str] = None) -> None:
        """Removes the given session, or the current one"""
        if session_id is None:
            self.colony.teardown()
        else:
            try:
                self.colony.sessions.cleanup(session_id)
            except KeyError:
                raise ColonyError(f"no such session {session_id}") from None


def main() -> None:
    try:
        fire.Fire(ColonyCli, name="colony")
    except ColonyError as e:
        logger.debug("failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
