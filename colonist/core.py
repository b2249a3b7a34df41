"""
Core data structures -- configuration as consumed by the colony, executions and their results
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from colonist.errors import ColonyError, ConfigInvalid

# NOTE everything handed from configuration to the binder, graph and engine is frozen. Executions
# are shared between threads of a run and must never be mutated once created


class VariableSpec(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    name: str
    required: bool = False
    values: list[str] = Field(
        default_factory=list,
        description="allowed values. Empty means any value is accepted",
    )
    flag: Optional[str] = Field(
        None, description="name of the command line flag, defaults to `name`"
    )

    @property
    def flag_name(self) -> str:
        return self.flag or self.name

    def allows(self, value: str) -> bool:
        return not self.values or value in self.values


class ModuleConfig(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    name: str
    source: str = Field(description="directory holding the terraform code of the module")
    depends_on: list[str] = Field(default_factory=list)
    variables: list[VariableSpec] = Field(default_factory=list)
    presets: dict[str, str] = Field(
        default_factory=dict, description="values used unless the user overrides them"
    )
    terraform_version: Optional[str] = Field(
        None, description="overrides the colony-wide terraform version"
    )

    def variable(self, name: str) -> Optional[VariableSpec]:
        for spec in self.variables:
            if spec.name == name:
                return spec
        return None

    def problems(self, known_modules: set[str]) -> list[str]:
        rv: list[str] = []
        seen: set[str] = set()
        for spec in self.variables:
            if spec.name in seen:
                rv.append(f"module {self.name}: variable {spec.name} declared twice")
            seen.add(spec.name)
        for name, value in self.presets.items():
            spec = self.variable(name)
            if spec is None:
                rv.append(f"module {self.name}: preset for undeclared variable {name}")
            elif not spec.allows(value):
                rv.append(f"module {self.name}: preset {name}={value!r} not in {spec.values}")
        for dependency in self.depends_on:
            if dependency == self.name:
                rv.append(f"module {self.name}: depends on itself")
            elif dependency not in known_modules:
                rv.append(f"module {self.name}: depends on unknown module {dependency}")
        return rv


class HooksConfig(BaseModel):
    startup: list[str] = Field(
        default_factory=list,
        description="shell commands run once at colony construction, may export environment variables",
    )


class ColonyConfig(BaseModel):
    modules: list[ModuleConfig]
    session_repo_dir: str = Field(
        ".", description="directory under which the `.tfcolony` session repository is kept"
    )
    terraform_version: Optional[str] = Field(
        None, description="version used by modules without an override. Unset means `terraform` on PATH"
    )
    versions_dir: Optional[str] = Field(
        None, description="cache of downloaded terraform binaries, `~/.colonist/terraform` by default"
    )
    max_parallel: Optional[int] = Field(
        None, description="cap on concurrently running executions. Unset means no cap"
    )
    hooks: HooksConfig = Field(default_factory=HooksConfig)

    def module(self, name: str) -> ModuleConfig:
        for module in self.modules:
            if module.name == name:
                return module
        raise KeyError(name)

    def check(self) -> "ColonyConfig":
        """Gathers every problem of the configuration into a single ConfigInvalid"""
        errors: list[str] = []
        known = {m.name for m in self.modules}
        seen: set[str] = set()
        for module in self.modules:
            if module.name in seen:
                errors.append(f"module {module.name} declared twice")
            seen.add(module.name)
            errors.extend(module.problems(known))
        if self.max_parallel is not None and self.max_parallel < 1:
            errors.append(f"max_parallel must be positive, got {self.max_parallel}")
        if errors:
            raise ConfigInvalid(errors)
        return self

    def flags(self) -> dict[str, list[str]]:
        """flag name -> names of the variables it sets, across all modules"""
        rv: dict[str, list[str]] = {}
        for module in self.modules:
            for spec in module.variables:
                names = rv.setdefault(spec.flag_name, [])
                if spec.name not in names:
                    names.append(spec.name)
        return rv


class UserVariables(BaseModel):
    model_config = ConfigDict(frozen=True)

    values: dict[str, str] = Field(default_factory=dict)
    supplied: bool = True

    @classmethod
    def none(cls) -> "UserVariables":
        return cls(values={}, supplied=False)

    @classmethod
    def of(cls, values: dict[str, str]) -> "UserVariables":
        return cls(values=dict(values), supplied=bool(values))

    def get(self, name: str) -> Optional[str]:
        # NOTE an empty value counts as not supplied -- that is what an unset flag looks like
        return self.values.get(name) or None


class BoundExecution(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: ModuleConfig
    variables: dict[str, str]

    @property
    def name(self) -> str:
        return self.module.name


class ResultStatus(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    skipped = "skipped"


class Result(BaseModel):
    execution: BoundExecution
    status: ResultStatus
    error: Optional[str] = Field(None, description="kind of error, name of a ColonyError subclass")
    cause: Optional[str] = None

    @property
    def name(self) -> str:
        return self.execution.name

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.succeeded

    @classmethod
    def succeeded(cls, execution: BoundExecution) -> "Result":
        return cls(execution=execution, status=ResultStatus.succeeded)

    @classmethod
    def failed(cls, execution: BoundExecution, error: Exception) -> "Result":
        kind = type(error).__name__ if isinstance(error, ColonyError) else "ExecutionFailed"
        return cls(execution=execution, status=ResultStatus.failed, error=kind, cause=str(error) or repr(error))

    @classmethod
    def skipped(cls, execution: BoundExecution, cause: str) -> "Result":
        return cls(execution=execution, status=ResultStatus.skipped, cause=cause)
