"""YAML settings source with include: directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

CONFIG_FILENAME = "braid.yaml"

# Logger used while configuration is still loading. Created lazily
# because log.py imports base.py, which config.py also needs.
_bootstrap_logger = None


def _get_bootstrap_logger():
    global _bootstrap_logger
    if _bootstrap_logger is None:
        from braid.core.log import Logger
        _bootstrap_logger = Logger()
        _bootstrap_logger.setup(log_root=Path.home(), run_name="bootstrap")
    return _bootstrap_logger


def _cleanup_bootstrap_logger():
    """Close the bootstrap logger once Config installed the real one."""
    global _bootstrap_logger
    if _bootstrap_logger:
        _bootstrap_logger.close()
        _bootstrap_logger = None


def packaged_defaults() -> Path:
    """Path of the defaults shipped with braid."""
    return Path(__file__).parent.parent / "defaults" / "default.yaml"


def cli_includes(argv: list[str]) -> list[str]:
    """Collect the values of every ``--include FILE`` in ``argv``."""
    includes = []
    args = iter(argv[1:])
    for arg in args:
        if arg == "--include":
            value = next(args, None)
            if value is not None:
                includes.append(value)
        elif arg.startswith("--include="):
            includes.append(arg.split("=", 1)[1])
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML settings source layering several files.

    Files are deep-merged in this order, later ones winning:
        packaged defaults < user config < ./braid.yaml < --include files

    Any file may carry an ``include:`` key (string or list) naming
    further files, resolved relative to the including file.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        includes: list[str] | None = None,
    ):
        """Initialize the source.

        Args:
            settings_cls: Settings class being loaded
            includes: Extra files to layer on top; defaults to the
                ``--include`` arguments found in sys.argv
        """
        if includes is None:
            includes = cli_includes(sys.argv)
        super().__init__(settings_cls, list(includes))

    def _read_files(self, files):
        """Load and deep-merge every configuration layer.

        Args:
            files: Include files from the command line, if any

        Returns:
            Merged configuration dictionary
        """
        candidates = [
            packaged_defaults(),
            Path(user_config_dir("braid", appauthor=False))
            / CONFIG_FILENAME,
            Path(CONFIG_FILENAME),
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            candidates.extend(Path(f).expanduser() for f in files)

        result = {}
        for file_path in candidates:
            if not file_path.is_file():
                _get_bootstrap_logger().debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )
                continue
            with _get_bootstrap_logger().span(
                "Configuration loading",
                file=str(file_path),
            ):
                data = self._load_file_recursive(file_path, set())
                result = deep_merge(result, data)

        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load one file with its include: directives resolved.

        Raises:
            ValueError: If a file includes itself, directly or not
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]

        for inc in includes:
            inc_path = Path(inc).expanduser()
            if not inc_path.is_absolute():
                inc_path = filepath.parent / inc_path
            inc_data = self._load_file_recursive(inc_path, visited.copy())
            data = deep_merge(inc_data, data)

        return data


def deep_merge(base: dict, override: dict) -> dict:
    """Merge ``override`` into a copy of ``base``; override wins."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
