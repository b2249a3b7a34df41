"""
Concurrent execution of bound executions within one session.

Every entry point returns a `Run` immediately: a driver thread schedules executions onto a
thread pool, each execution drives one terraform runner. A run exposes two streams, progress
lines and terminal results, plus a cancellation token threaded into every runner call.

 - plan_all ignores dependencies entirely, a plan has no side effects on shared state
 - apply_graph goes batch by batch, skipping everything downstream of a failure
 - apply_subset runs an explicitly named subset with no ordering at all -- the caller is
   responsible for sequencing
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from enum import Enum
from typing import Callable, Generic, Iterator, Optional, TypeVar

from typing_extensions import assert_never

from colonist.cancel import CancelToken
from colonist.core import BoundExecution, Result, ResultStatus
from colonist.errors import ExecutionFailed, VersionResolutionFailed
from colonist.graph import ExecutionGraph, NodeId
from colonist.session import Session
from colonist.terraform import RunnerFactory, RunnerOutcome
from colonist.versions import VersionRepo

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()


class Operation(str, Enum):
    plan = "plan"
    apply = "apply"


class Stream(Generic[T]):
    """Unbounded queue consumed as an iterator. Iteration ends once the producer closed it"""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()

    def put(self, item: T) -> None:
        self._queue.put(item)

    def close(self) -> None:
        self._queue.put(_END)

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self._queue.get()
            if item is _END:
                # so that any later iteration ends as well
                self._queue.put(_END)
                return
            yield item


class Run:
    def __init__(self, operation: Operation, executions: list[BoundExecution]) -> None:
        self.operation = operation
        self.executions = executions
        self.progress: Stream[str] = Stream()
        self.results: Stream[Result] = Stream()
        self.token = CancelToken()
        self.error: Optional[Exception] = None
        self.resources = ExitStack()  # closed once the run is over
        self._thread: Optional[threading.Thread] = None

    def start(self, driver: Callable[["Run"], None]) -> "Run":
        self._thread = threading.Thread(
            name=f"colonist-{self.operation.value}",
            target=self._drive,
            args=(driver,),
            daemon=True,
        )
        self._thread.start()
        return self

    def _drive(self, driver: Callable[["Run"], None]) -> None:
        try:
            driver(self)
        except Exception as e:
            logger.exception(f"driver of {self.operation.value} crashed")
            self.error = e
        finally:
            self.resources.close()
            self.progress.close()
            self.results.close()

    def cancel(self, force: bool = False) -> None:
        """Stops starting new executions. With `force`, terminates the running ones too"""
        logger.info(f"cancelling {self.operation.value} ({force=})")
        self.token.cancel(force)

    def wait(self) -> list[Result]:
        """Blocks until every execution has a result. Consumes the result stream"""
        rv = list(self.results)
        if self._thread is not None:
            self._thread.join()
        if self.error is not None:
            raise self.error
        return rv


class Engine:
    def __init__(
        self,
        session: Session,
        versions: VersionRepo,
        runner_factory: RunnerFactory,
        terraform_version: Optional[str] = None,
        max_parallel: Optional[int] = None,
    ) -> None:
        self.session = session
        self.versions = versions
        self.runner_factory = runner_factory
        self.terraform_version = terraform_version
        self.max_parallel = max_parallel

    def plan_all(self, executions: list[BoundExecution], detach: bool = False) -> Run:
        run = Run(Operation.plan, executions)
        return run.start(lambda r: self._run_all(r, executions, detach))

    def apply_subset(self, executions: list[BoundExecution]) -> Run:
        run = Run(Operation.apply, executions)
        run.resources.enter_context(self.session.lock())
        return run.start(lambda r: self._run_all(r, executions))

    def apply_graph(self, graph: ExecutionGraph) -> Run:
        run = Run(Operation.apply, graph.nodes)
        run.resources.enter_context(self.session.lock())
        return run.start(lambda r: self._run_graph(r, graph))

    def _pool(self, width: int) -> ThreadPoolExecutor:
        workers = max(width, 1)
        if self.max_parallel is not None:
            workers = min(workers, self.max_parallel)
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="colonist")

    def _run_all(self, run: Run, executions: list[BoundExecution], detach: bool = False) -> None:
        logger.info(f"running {run.operation.value} for {len(executions)} executions")
        with self._pool(len(executions)) as pool:
            futures = [
                pool.submit(self._execute, run, execution, detach)
                for execution in executions
            ]
            for future in as_completed(futures):
                run.results.put(future.result())

    def _run_graph(self, run: Run, graph: ExecutionGraph) -> None:
        # node -> name of the failed module it is held back by
        blocked: dict[NodeId, str] = {}
        batches = list(graph.batch_ids())
        logger.info(f"applying {len(graph)} executions in {len(batches)} batches")
        with self._pool(max((len(b) for b in batches), default=1)) as pool:
            for level, batch in enumerate(batches):
                futures: dict[Future, NodeId] = {}
                for node in batch:
                    execution = graph.nodes[node]
                    if node in blocked:
                        cause = f"upstream module {blocked[node]} did not succeed"
                        run.progress.put(f"[{execution.name}] skipped: {cause}")
                        run.results.put(Result.skipped(execution, cause))
                    else:
                        futures[pool.submit(self._execute, run, execution)] = node
                for future in as_completed(futures):
                    result = future.result()
                    # cancelled executions do not block, their dependants see the cancellation themselves
                    if result.status == ResultStatus.failed:
                        for dependant in graph.downstream(futures[future]):
                            blocked.setdefault(dependant, result.name)
                    run.results.put(result)
                logger.debug(f"batch {level} done, {len(blocked)} executions blocked so far")

    def _check(self, execution: BoundExecution, step: str, outcome: RunnerOutcome) -> None:
        if not outcome.ok:
            raise ExecutionFailed(execution.name, step, outcome.returncode, outcome.detail)

    def _execute(self, run: Run, execution: BoundExecution, detach: bool = False) -> Result:
        name = execution.name

        def on_line(line: str) -> None:
            run.progress.put(f"[{name}] {line}")

        if run.token.cancelled:
            on_line("not started: cancelled")
            return Result.skipped(execution, "cancelled")

        version = execution.module.terraform_version or self.terraform_version
        try:
            binary = self.versions.resolve_for(self.session, version)
            workdir = self.session.prepare(execution.module)
            runner = self.runner_factory(workdir, binary)
            if detach:
                self._check(execution, "init", self.session.init_local(execution.module, runner, on_line, run.token))
            elif not runner.initialized():
                self._check(execution, "init", runner.init(on_line, run.token))

            if run.operation == Operation.plan:
                outcome = runner.plan(execution.variables, on_line, run.token)
            elif run.operation == Operation.apply:
                outcome = runner.apply(execution.variables, on_line, run.token)
            else:
                assert_never(run.operation)
            self._check(execution, run.operation.value, outcome)
        except (VersionResolutionFailed, ExecutionFailed) as e:
            logger.warning(f"{name}: {e}")
            on_line(str(e))
            return Result.failed(execution, e)
        except Exception as e:
            logger.exception(f"{run.operation.value} of {name} crashed")
            on_line(repr(e))
            return Result.failed(execution, e)

        on_line(f"{run.operation.value} succeeded")
        return Result.succeeded(execution)
