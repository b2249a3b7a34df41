"""
Turns modules of the configuration plus the variables given by the user into bound
executions. Either every execution binds, or nothing is returned -- a typo in one
module's variables must not lead to a partially applied colony
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from colonist.core import BoundExecution, ColonyConfig, ModuleConfig, UserVariables
from colonist.errors import ConfigInvalid, InvalidEnumValue, MissingRequiredVariable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Execution:
    """A module paired with the user variables, prior to resolution"""

    module: ModuleConfig
    user_variables: UserVariables

    def bind(self) -> BoundExecution:
        values: dict[str, str] = {}
        for spec in self.module.variables:
            user_value = self.user_variables.get(spec.name)
            if user_value is not None:
                if not spec.allows(user_value):
                    raise InvalidEnumValue(self.module.name, spec.name, user_value, spec.values)
                values[spec.name] = user_value
            elif self.module.presets.get(spec.name):
                values[spec.name] = self.module.presets[spec.name]
            elif spec.required:
                raise MissingRequiredVariable(self.module.name, spec.name)
        return BoundExecution(module=self.module, variables=values)


class ExecutionSet(list[Execution]):
    """Executions in configuration order. Real ordering is imposed by the graph"""

    def bind_all(self) -> list[BoundExecution]:
        return [execution.bind() for execution in self]


def executions(
    config: ColonyConfig,
    module_names: Optional[Iterable[str]],
    user_variables: UserVariables,
) -> ExecutionSet:
    """One execution per configured module, optionally only for the modules named"""
    wanted = None if module_names is None else set(module_names)
    if wanted is not None:
        unknown = wanted - {m.name for m in config.modules}
        if unknown:
            raise ConfigInvalid([f"unknown module {name}" for name in sorted(unknown)])

    rv = ExecutionSet()
    for module in config.modules:
        if wanted is not None and module.name not in wanted:
            logger.debug(f"ignoring module {module.name} as it does not match filter")
            continue
        rv.append(Execution(module=module, user_variables=user_variables))
    return rv


def bind(execution_set: ExecutionSet, user_variables: UserVariables) -> list[BoundExecution]:
    """Binds `user_variables` to every execution of the set, raising on the first failure"""
    rv = ExecutionSet(
        Execution(module=execution.module, user_variables=user_variables)
        for execution in execution_set
    ).bind_all()
    logger.debug(f"bound {len(rv)} executions")
    return rv
