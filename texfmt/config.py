"""
Configuration management for texfmt.

Settings come from a YAML file (``--config PATH`` or the nearest
``.texfmt.yaml`` above the working directory) and are overridden by
command-line options.

Example file::

    width: 100
    indent_width: 4
    commands:
      mysection: {signature: om, break_before: true, break_after: true}
    environments:
      code: {verbatim: true, indent_body: false}
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core.commands import CommandTable, default_table
from .core.errors import ConfigError
from .core.formatter import DEFAULT_INDENT_WIDTH, DEFAULT_WIDTH, Formatter

logger = logging.getLogger(__name__)

CONFIG_FILENAME = '.texfmt.yaml'

_KNOWN_KEYS = {'width', 'indent_width', 'use_tabs', 'commands', 'environments'}


@dataclass
class FormatterConfig:
    """Formatting settings for one run."""

    width: int = DEFAULT_WIDTH
    indent_width: int = DEFAULT_INDENT_WIDTH
    use_tabs: bool = False

    # Command table overrides, name -> CommandSpec fields
    commands: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    environments: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # File the settings were read from, if any
    source: Optional[Path] = None

    def with_overrides(self, **values) -> "FormatterConfig":
        """Return a copy with every non-None value replaced."""
        changes = {key: value for key, value in values.items() if value is not None}
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self):
        """
        Check value types and ranges.

        Raises:
            ConfigError: if a value is invalid
        """
        if isinstance(self.width, bool) or not isinstance(self.width, int) or self.width < 1:
            raise ConfigError(f"width must be a positive integer, got {self.width!r}")
        if (isinstance(self.indent_width, bool) or not isinstance(self.indent_width, int)
                or self.indent_width < 0):
            raise ConfigError(f"indent_width must be a non-negative integer, got {self.indent_width!r}")
        if not isinstance(self.use_tabs, bool):
            raise ConfigError(f"use_tabs must be true or false, got {self.use_tabs!r}")
        for section in ('commands', 'environments'):
            entries = getattr(self, section)
            if not isinstance(entries, dict):
                raise ConfigError(f"{section} must be a mapping of names to settings")
            for name, entry in entries.items():
                if entry is not None and not isinstance(entry, dict):
                    raise ConfigError(f"{section}.{name} must be a mapping, got {entry!r}")

    def build_table(self) -> CommandTable:
        """
        Build the command table for this configuration.

        Raises:
            ConfigError: if an override has unknown keys or a bad signature
        """
        if not self.commands and not self.environments:
            return default_table()
        try:
            return default_table().with_overrides(self.commands, self.environments)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid command table entry: {e}")

    def create_formatter(self) -> Formatter:
        return Formatter(self.width, self.indent_width, self.use_tabs, self.build_table())


def find_config(start: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Find the nearest configuration file.

    Args:
        start: Directory to start from (defaults to the working directory)

    Returns:
        Path of the first ``.texfmt.yaml`` found walking upwards, or None
    """
    directory = Path(start or Path.cwd()).resolve()
    if directory.is_file():
        directory = directory.parent
    for candidate in [directory] + list(directory.parents):
        path = candidate / CONFIG_FILENAME
        if path.is_file():
            return path
    return None


def _from_mapping(data: Any, source: Optional[Path] = None) -> FormatterConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"configuration must be a mapping, got {type(data).__name__}")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(map(str, unknown)))}")

    config = FormatterConfig(source=source)
    config = replace(config, **{key: value for key, value in data.items() if value is not None})
    config.validate()
    # surface bad command table entries at load time
    config.build_table()
    return config


def load_config(path: Optional[Union[str, Path]] = None, search: bool = True) -> FormatterConfig:
    """
    Load configuration.

    Args:
        path: Explicit configuration file; must exist when given
        search: Look for ``.texfmt.yaml`` when no path is given

    Returns:
        FormatterConfig (defaults when no file applies)

    Raises:
        ConfigError: on unreadable files, invalid YAML or invalid values
    """
    if path is None:
        path = find_config() if search else None
        if path is None:
            logger.debug("No configuration file found, using defaults")
            return FormatterConfig()

    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}")

    config = _from_mapping(data, path)
    logger.info(f"Loaded configuration from {path}")
    return config
