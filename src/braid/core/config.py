"""Application configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from braid.core.base import BaseConfig
from braid.core.log import Logger
from braid.core.yaml_settings import YamlWithIncludesSettingsSource

# ============================================================
# TEMPLATE SUBSTITUTION NAMESPACE
# ============================================================

# Modules reachable from templates in YAML files, e.g.
# {platformdirs.user_log_dir} or {Path.cwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class GitConfig(BaseConfig):
    """Repository and remote selection."""

    workdir: Path = Field(
        default_factory=Path.cwd,
        description="Path to the git working directory to operate on",
    )
    remote: str = Field(
        default="origin",
        description="Remote to fetch from and push to",
    )


class SyncConfig(BaseConfig):
    """Defaults for the sync workflow."""

    strategy: Literal["rebase", "merge"] = Field(
        default="rebase",
        description=(
            "'rebase' for linear history, 'merge' to keep the "
            "branch's history intact"
        ),
    )
    push: bool = Field(
        default=True,
        description="Push the synced branch to the remote",
    )
    max_iterations: int = Field(
        default=50,
        ge=1,
        description=(
            "Passes through the rebase conflict loop before the "
            "rebase is aborted"
        ),
    )


class LLMConfig(BaseConfig):
    """LLM provider and model used for conflict analysis."""

    model: str | None = Field(
        default=None,
        description=(
            "Model for conflict analysis, as 'provider:model' "
            "(e.g. openai:gpt-4o-mini). Analysis is skipped when unset."
        ),
    )
    api_key: str | None = Field(
        default=None,
        description=(
            "API key for the provider. When unset the provider reads "
            "its own environment variable (e.g. OPENAI_API_KEY)"
        ),
    )
    base_url: str | None = Field(
        default=None,
        description=(
            "Base URL for OpenAI-compatible endpoints "
            "(e.g. http://localhost:8080/v1)"
        ),
    )


class Config(BaseConfig):
    """Configuration loaded from YAML/env/CLI, grouped by section."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance",
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Repository settings",
    )
    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync workflow defaults",
    )
    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="Conflict analysis model settings",
    )

    log_level: str = Field(
        default="info",
        alias="log-level",
        description=(
            "Console log level: 'spew', 'trace', 'debug', 'info', "
            "'warn', 'error', 'fatal'"
        ),
    )
    interactive: bool = Field(
        default=False,
        description=(
            "Pause the rebase loop at each conflicted commit until "
            "the conflicts are resolved by hand"
        ),
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir()) / "braid"
        ),
        description=(
            "Root directory for log files "
            "(supports {platformdirs.*} templates)"
        ),
    )
    run_name: str = Field(
        default="braid",
        description="Name of this run, used for log paths",
    )

    commands: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Command templates by category (git, ...)",
    )
    prompts: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Prompt templates for the conflict analyzer",
    )
    agents: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Agent settings for the conflict analyzer",
    )

    model_config = {"populate_by_name": True}

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Install the global logger once the configuration loaded."""
        from braid.core.log import setup_logger
        from braid.core.yaml_settings import _cleanup_bootstrap_logger

        if self.logger is None:
            self.logger = Logger(level=self.log_level)
        elif 'log_level' in self.model_fields_set:
            # --config.log-level overrides the YAML logger section
            self.logger.level = self.log_level
            self.logger.console.level = self.log_level

        setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            console=self.logger.console,
            otlp=self.logger.otlp,
            file=self.logger.file,
            logfire=self.logger.logfire,
            level=self.logger.level,
        )
        _cleanup_bootstrap_logger()

        return self

    def close(self):
        """Close the global logger and every closeable section."""
        from braid.core.log import logger
        logger.close()
        super().close()


# ============================================================
# STATE (settings root)
# ============================================================

class State(BaseSettings):
    """Root settings object built from every configuration source.

    Holds the configuration for one invocation of braid. Workflow
    state is not kept here: each workflow run threads its own frozen
    state values from step to step.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to merge over the defaults. "
            "Use --include on the CLI or include: in YAML files."
        ),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BRAID_",
        env_nested_delimiter="__",
        cli_parse_args=True,
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Source priority, highest first: init args, YAML layers,
        .env, environment, secrets."""
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Expand {config.*} and {platformdirs.*} templates in every
        string, Path, dict value and list item."""
        self._substitute_recursive(self)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                obj[i] = self._substitute_value(item)

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        if isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {dotted.path} templates that resolve.

        Only paths rooted at ``config`` or a TEMPLATE_NAMESPACE
        module are expanded. Anything else, such as the {ref} and
        {source} placeholders of command and prompt templates, is
        left for later formatting.

        Examples:
            "{config.git.workdir}/build" → "/home/user/repo/build"
            "{platformdirs.user_log_dir}" → "~/.local/state/braid/log"
        """
        def replace_template(match):
            parts = match.group(1).split(".")

            if parts[0] in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            elif parts[0] == "config":
                obj = self
            else:
                return match.group(0)

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    obj = obj('braid', appauthor=False)
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


__all__ = [
    "Config",
    "GitConfig",
    "LLMConfig",
    "State",
    "SyncConfig",
]
