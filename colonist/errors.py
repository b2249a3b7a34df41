"""
Error taxonomy. Construction-time errors (config, hooks, binding, graph) are raised
before any subprocess starts; execution-time errors end up in a Result instead
"""


class ColonyError(Exception):
    """Base of every error colonist raises on purpose"""


class ConfigInvalid(ColonyError):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("invalid configuration: " + "; ".join(errors))


class HookFailed(ColonyError):
    def __init__(self, command: str, returncode: int, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(f"hook {command!r} exited with {returncode}")


class MissingRequiredVariable(ColonyError):
    def __init__(self, module: str, variable: str):
        self.module = module
        self.variable = variable
        super().__init__(f"module {module}: required variable {variable!r} is not set")


class InvalidEnumValue(ColonyError):
    def __init__(self, module: str, variable: str, value: str, allowed: list[str]):
        self.module = module
        self.variable = variable
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"module {module}: {value!r} is not a valid value for {variable!r}, expected one of {allowed}"
        )


class DependencyNotFound(ColonyError):
    def __init__(self, module: str, dependency: str):
        self.module = module
        self.dependency = dependency
        super().__init__(f"module {module} depends on unknown module {dependency!r}")


class CyclicDependency(ColonyError):
    def __init__(self, cycle: list[str]):
        # first and last element are the same module
        self.cycle = cycle
        super().__init__("dependency cycle: " + " -> ".join(cycle))


class SessionBusy(ColonyError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"session {session_id} is in use by another apply")


class VersionResolutionFailed(ColonyError):
    def __init__(self, version: str, reason: str):
        self.version = version
        self.reason = reason
        super().__init__(f"unable to provide terraform {version}: {reason}")


class ExecutionFailed(ColonyError):
    def __init__(self, module: str, step: str, returncode: int | None, detail: str = ""):
        self.module = module
        self.step = step
        self.returncode = returncode
        self.detail = detail
        msg = f"terraform {step} failed for {module}"
        if returncode is not None:
            msg += f" (exit code {returncode})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
