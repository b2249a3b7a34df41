"""
colonist -- plans and applies a colony of interdependent terraform modules.

The package is organised as follows:
 - core and errors define configuration, executions, results and the error taxonomy
 - binder resolves variables into bound executions
 - graph orders bound executions into batches
 - session and versions provide the working copy and the terraform binary
 - engine runs executions through a terraform runner (terraform, hooks)
 - colony bundles the above into the context of one invocation, used by the cli
"""

from colonist.colony import Colony
from colonist.core import BoundExecution, ColonyConfig, ModuleConfig, Result, ResultStatus, UserVariables, VariableSpec
from colonist.version import __version__

__all__ = [
    "Colony",
    "BoundExecution",
    "ColonyConfig",
    "ModuleConfig",
    "Result",
    "ResultStatus",
    "UserVariables",
    "VariableSpec",
    "__version__",
]
