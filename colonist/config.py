"""
Config file discovery & decoding, and the logging configuration of the cli
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from colonist.core import ColonyConfig
from colonist.errors import ConfigInvalid

logger = logging.getLogger(__name__)

search_paths = ["colony.yaml", "colony.yml", ".colony.yaml"]

logging_config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s",
        },
    },
    "handlers": {
        "default": {
            "level": "DEBUG",
            "formatter": "default",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "colonist": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
    "root": {"level": "WARNING", "handlers": ["default"]},
}


def logging_config_for(verbose: bool = False, trace: bool = False) -> dict:
    level = "DEBUG" if trace else "INFO" if verbose else "WARNING"
    return {
        **logging_config,
        "loggers": {**logging_config["loggers"], "colonist": {"level": level}},
    }


def find_config(directory: Optional[Path] = None) -> Path:
    base = Path.cwd() if directory is None else directory
    for candidate in search_paths:
        path = base / candidate
        if path.is_file():
            return path
    raise ConfigInvalid([f"unable to find config file, looked for {search_paths} in {base}"])


def load_config(path: Path) -> ColonyConfig:
    """Decodes and validates the config at `path`. Relative paths inside are relative to the file"""
    logger.debug(f"loading config from {path}")
    try:
        raw = yaml.safe_load(Path(path).read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigInvalid([f"unable to read {path}: {e}"]) from e
    if not isinstance(raw, dict):
        raise ConfigInvalid([f"{path}: expected a mapping at the top level"])

    base = Path(path).resolve().parent
    for module in raw.get("modules") or []:
        if isinstance(module, dict) and "source" in module:
            module["source"] = str(base / Path(module["source"]).expanduser())
    raw["session_repo_dir"] = str(base / raw.get("session_repo_dir", "."))

    try:
        config = ColonyConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigInvalid([
            f"{'.'.join(str(p) for p in error['loc'])}: {error['msg']}" for error in e.errors()
        ]) from e
    return config.check()
