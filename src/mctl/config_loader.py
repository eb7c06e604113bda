"""
Settings files for mctl.

Tool settings (git executable, parallelism, logging) may live in up to
three YAML files.  They are read lowest precedence first and merged
section by section, so a project file only needs the keys it changes::

    ~/.config/mctl/config.yml      user defaults
    .mctl/config.yml (or .yaml)    project, relative to CWD
    $MCTL_CONFIG                   explicit file

String values may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``, and a value may be pulled from another file with
``!include other.yml`` (relative to the including file).

The fleet registry itself lives in ``.mirror/mirror.yaml`` and is
handled by ``mctl.repository.registry``.

Usage:
    from mctl.config_loader import load_settings

    settings = load_settings()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config_schema import UnifiedConfig, build_config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MCTL_CONFIG"

_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<fallback>[^}]*))?\}")


def expand_env(text: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-fallback}`` references.

    An unset or empty variable expands to its fallback, or to ``""``
    when there is none.  An unterminated ``${`` is kept as written.
    """

    def _lookup(match: re.Match) -> str:
        value = os.environ.get(match["name"], "")
        if value:
            return value
        return match["fallback"] or ""

    return _ENV_REFERENCE.sub(_lookup, text)


class SettingsReader(yaml.SafeLoader):
    """SafeLoader with ``!include`` and env expansion in string scalars.

    ``chain`` holds the files being read, outermost first, and is used
    to reject include cycles.  ``yaml.SafeLoader`` itself is left alone.
    """

    chain: tuple[Path, ...] = ()


def _construct_string(reader: SettingsReader, node: yaml.ScalarNode) -> str:
    return expand_env(reader.construct_scalar(node))


def _construct_include(reader: SettingsReader, node: yaml.ScalarNode) -> Any:
    including = reader.chain[-1]
    target = (including.parent / os.path.expanduser(node.value)).resolve()
    if target in reader.chain:
        cycle = " -> ".join(str(p) for p in (*reader.chain, target))
        raise ConfigurationError(
            f"Circular include in {reader.chain[0]}"
        ).with_details(cycle)
    if not target.is_file():
        raise ConfigurationError(
            f"Include file not found: {target}"
        ).with_details(f"Referenced from {including}")
    return read_settings_file(target, _chain=reader.chain)


SettingsReader.add_constructor("tag:yaml.org,2002:str", _construct_string)
SettingsReader.add_constructor("!include", _construct_include)


def read_settings_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse one settings file, following ``!include`` directives.

    Raises:
        ConfigurationError: If the file (or an included file) cannot be
            read or is not valid YAML, or includes form a cycle.
    """
    path = Path(path).resolve()
    try:
        with open(path, encoding="utf-8") as fh:
            reader = SettingsReader(fh)
            reader.chain = (*_chain, path)
            try:
                return reader.get_single_data()
            finally:
                reader.dispose()
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Invalid YAML in settings file {path}"
        ).with_details(str(exc)) from exc
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read settings file {path}"
        ).with_details(exc.strerror or str(exc)) from exc


def settings_files() -> list[Path]:
    """Existing settings files, lowest precedence first."""
    candidates = [
        Path.home() / ".config" / "mctl" / "config.yml",
        Path.cwd() / ".mctl" / "config.yaml",
        Path.cwd() / ".mctl" / "config.yml",
    ]
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser())

    found: list[Path] = []
    for candidate in candidates:
        if not candidate.is_file():
            continue
        resolved = candidate.resolve()
        if resolved in found:
            found.remove(resolved)
        found.append(resolved)
    return found


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay *override* onto *base*; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(files: list[Path] | None = None) -> UnifiedConfig:
    """Read, merge and validate the settings files.

    Args:
        files: Files to read, lowest precedence first.  Defaults to
            ``settings_files()``.

    Returns:
        The validated settings; ``UnifiedConfig()`` when there are none.

    Raises:
        ConfigurationError: If a file is unreadable, is not a mapping,
            or the merged settings do not validate.
    """
    if files is None:
        files = settings_files()

    merged: dict[str, Any] = {}
    for path in files:
        logger.debug("Loading settings: %s", path)
        data = read_settings_file(path)
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Settings file {path} must contain a mapping"
            ).with_details(f"Found {type(data).__name__}")
        merged = merge_settings(merged, data)

    try:
        return build_config(merged)
    except ValidationError as exc:
        sources = ", ".join(str(p) for p in files)
        raise ConfigurationError(f"Invalid settings in {sources}").with_details(
            *(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
        ) from exc
