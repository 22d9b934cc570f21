"""Environment handling for check configs.

Connection settings in YAML refer to secrets as ``${DWH_PASSWORD}`` or
``$DWH_PASSWORD``. They resolve against the process environment, which a
``.env`` file can seed through python-dotenv.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

__all__ = [
    "env_references",
    "expand_env_vars",
    "expand_options",
    "load_env_file",
    "unresolved_references",
]

_REFERENCE = re.compile(r"\$\{(?P<braced>[^}]+)\}|\$(?P<bare>[A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Seed ``os.environ`` from a .env file.

    Without ``path`` the nearest .env at or above the working directory is
    used. Variables already set in the shell win unless ``override``.

    Returns:
        True if a file was found and defined at least one variable
    """
    if path is None:
        path = find_dotenv(usecwd=True)
        if not path:
            return False

    loaded = load_dotenv(dotenv_path=path, override=override)
    if loaded:
        logger.debug("Loaded environment from %s", path)
    return loaded


def env_references(value: str) -> List[str]:
    """Names of the variables a string refers to, in order."""
    return [m.group("braced") or m.group("bare") for m in _REFERENCE.finditer(value)]


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Replace variable references in a string with their values.

    Unset variables are left as written unless ``strict``.

    Raises:
        KeyError: ``strict`` and a referenced variable is unset

    Example:
        >>> os.environ["DWH_HOST"] = "sql01"
        >>> expand_env_vars("${DWH_HOST}:1433")
        'sql01:1433'
    """

    def resolve(match: re.Match[str]) -> str:
        name = match.group("braced") or match.group("bare")
        if name in os.environ:
            return os.environ[name]
        if strict:
            raise KeyError(f"Environment variable not set: {name}")
        return match.group(0)

    return _REFERENCE.sub(resolve, value)


def _expand(value: Any, strict: bool) -> Any:
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, Mapping):
        return {key: _expand(item, strict) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item, strict) for item in value]
    return value


def expand_options(options: Mapping[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Copy of a config mapping with every string expanded.

    Nested mappings and lists, lists of mappings included, are walked.
    """
    return {key: _expand(value, strict) for key, value in options.items()}


def unresolved_references(options: Any) -> List[str]:
    """Sorted names still referenced anywhere in an (expanded) config value."""
    found = set()
    if isinstance(options, str):
        found.update(env_references(options))
    elif isinstance(options, Mapping):
        for item in options.values():
            found.update(unresolved_references(item))
    elif isinstance(options, list):
        for item in options:
            found.update(unresolved_references(item))
    return sorted(found)
