"""
Config Loader — Load and validate the mirror YAML file.

``${VAR}`` references anywhere in the file are replaced with environment
values before parsing, so connection strings can live in ``.env`` rather
than in the committed YAML.

## Usage

    from mongo_mirror.config.loader import load_mirror_file

    mirror = load_mirror_file(Path("mirror.yaml"))
    for spec in mirror.collections:
        print(spec.name, spec.batch_size)
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..engine.reader import parse_batch_size
from ..errors import ConfigError
from .models import MirrorFile

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Replace ${VAR} with its value. Unknown variables are left as-is."""
    env = os.environ if environ is None else environ

    def _sub(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in env:
            return env[name]
        logger.warning(f"Environment variable {name} is not set")
        return match.group(0)

    return _ENV_REF.sub(_sub, text)


def load_yaml(path: Path, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load a YAML file and return its contents."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except OSError as e:
        raise ConfigError(f"Config file cannot be read: {e}")

    try:
        data = yaml.safe_load(expand_env(text, environ))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def format_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into one readable line per problem."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        lines.append(f"{location}: {item['msg']}")
    return "; ".join(lines)


def parse_mirror_file(data: Dict[str, Any]) -> MirrorFile:
    """Validate an already-parsed mapping."""
    try:
        return MirrorFile(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid mirror configuration: {format_validation_error(e)}")


def load_mirror_file(path: Path, environ: Optional[Mapping[str, str]] = None) -> MirrorFile:
    """
    Load and validate a mirror file.

    Args:
        path: Path to the YAML file
        environ: Mapping used for ${VAR} expansion (default: os.environ)

    Returns:
        Validated MirrorFile

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation
        InvalidBatchSize: If a collection has a malformed batchSize
    """
    data = load_yaml(Path(path), environ)
    mirror = parse_mirror_file(data)
    for spec in mirror.collections:
        parse_batch_size(spec.batch_size, spec.name)
    logger.debug(f"Loaded {len(mirror.collections)} collection(s) from {path}")
    return mirror
