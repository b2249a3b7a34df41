"""
Startup hooks: shell commands run when a colony is constructed. A hook may export environment
variables (credentials, TF_VAR_* etc); whatever environment it ends with is applied to this
process so that later hooks and terraform itself see it
"""

import logging
import os
import subprocess
from pathlib import Path

from colonist.errors import HookFailed

logger = logging.getLogger(__name__)

_MARKER = "__COLONIST_HOOK_ENV__"
# maintained by the shell itself
_IGNORED = {"PWD", "OLDPWD", "SHLVL", "_"}


def _parse_env(raw: str) -> dict[str, str]:
    rv = {}
    for entry in raw.split("\0"):
        if "=" in entry:
            key, value = entry.split("=", 1)
            rv[key] = value
    return rv


def run_hook(command: str, cwd: Path) -> dict[str, str]:
    """Runs `command` in `cwd` and applies its resulting environment to os.environ.
    Returns the variables which changed"""
    logger.debug(f"running hook {command!r} in {cwd}")
    script = f"{command}\n__rc=$?\n[ $__rc -eq 0 ] || exit $__rc\nprintf '%s' {_MARKER}\nenv -0\n"
    proc = subprocess.run(
        ["sh", "-c", script],
        cwd=cwd,
        env=dict(os.environ),
        capture_output=True,
        text=True,
    )
    if proc.returncode != 0 or _MARKER not in proc.stdout:
        raise HookFailed(command, proc.returncode, (proc.stdout + proc.stderr).strip())

    output, raw_env = proc.stdout.rsplit(_MARKER, 1)
    if output.strip():
        logger.info(f"hook {command!r}: {output.strip()}")

    env = _parse_env(raw_env)
    changed = {k: v for k, v in env.items() if k not in _IGNORED and os.environ.get(k) != v}
    for key in [k for k in os.environ if k not in env and k not in _IGNORED]:
        logger.debug(f"hook unset {key}")
        del os.environ[key]
    os.environ.update(changed)
    logger.debug(f"hook changed {sorted(changed)}")
    return changed
