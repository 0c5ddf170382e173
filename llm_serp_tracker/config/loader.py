"""
Configuration loader for LLM SERP Tracker.

Loads tracker.config.yaml, validates it with the pydantic models in
config.schema, and resolves API keys from environment variables into a
RuntimeConfig. Secrets therefore never need to be committed with the config.

Functions:
    load_config: Main entrypoint to load and validate a config file
    resolve_surfaces: Resolve env_api_key variables to API keys
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from llm_serp_tracker.exceptions import (
    APIKeyMissingError,
    ConfigFileNotFoundError,
    ConfigValidationError,
)

from .schema import RuntimeConfig, RuntimeSurface, Surface, TrackerConfig

logger = logging.getLogger(__name__)


def format_validation_error(error: ValidationError) -> list[str]:
    """Render pydantic errors as "  - location: message" lines."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        lines.append(f"  - {loc}: {item['msg']}")
    return lines


def read_config_file(config_path: str | Path) -> TrackerConfig:
    """
    Read and validate a config file without resolving API keys.

    Used by load_config(); handy on its own when no API keys are set.

    Raises:
        ConfigFileNotFoundError: If the file does not exist
        ConfigValidationError: If YAML is invalid or validation fails
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration root must be a mapping in {config_path}, "
            f"got {type(raw_config).__name__}"
        )

    try:
        return TrackerConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + "\n".join(format_validation_error(e))
        ) from e


def resolve_surfaces(
    config: TrackerConfig, surfaces: list[Surface] | None = None
) -> dict[Surface, RuntimeSurface]:
    """
    Resolve API keys for the requested surfaces.

    Args:
        config: Validated configuration
        surfaces: Surfaces to resolve. None means every configured surface.

    Returns:
        Mapping of surface to RuntimeSurface, in config order

    Raises:
        ConfigValidationError: If a requested surface is not configured
        APIKeyMissingError: If an API key variable is unset or blank
    """
    requested = list(config.surfaces) if surfaces is None else surfaces

    resolved: dict[Surface, RuntimeSurface] = {}
    for surface in requested:
        surface_config = config.surfaces.get(surface)
        if surface_config is None:
            raise ConfigValidationError(
                f"Surface '{surface}' is not configured. "
                f"Configured surfaces: {', '.join(config.surfaces)}"
            )

        env_var_name = surface_config.env_api_key
        api_key = os.environ.get(env_var_name)

        if not api_key or api_key.isspace():
            raise APIKeyMissingError(
                f"Environment variable ${env_var_name} not set "
                f"(required for {surface}/{surface_config.model_name}). "
                f"Please set it in your environment."
            )

        resolved[surface] = RuntimeSurface(
            surface=surface,
            model_name=surface_config.model_name,
            api_key=api_key.strip(),
            temperature=surface_config.temperature,
            top_p=surface_config.top_p,
            max_tokens=surface_config.max_tokens,
            seed=config.run_settings.seed,
            base_url=surface_config.base_url,
        )

    return resolved


def load_config(
    config_path: str | Path, surfaces: list[Surface] | None = None
) -> RuntimeConfig:
    """
    Load, validate and resolve a configuration file.

    Relative sqlite_db_path values are resolved against the config file's
    directory so runs behave the same regardless of working directory.

    Args:
        config_path: Path to tracker.config.yaml
        surfaces: Only resolve these surfaces' API keys (default: all)

    Returns:
        RuntimeConfig ready for the runner

    Raises:
        ConfigFileNotFoundError: If the file does not exist
        ConfigValidationError: If YAML or schema validation fails
        APIKeyMissingError: If a required environment variable is missing

    Example:
        >>> config = load_config("tracker.config.yaml", [Surface.OPENAI])
        >>> config.surfaces[Surface.OPENAI].model_name
        'gpt-5'
    """
    config_path = Path(config_path)
    tracker_config = read_config_file(config_path)

    run_settings = tracker_config.run_settings
    db_path = Path(run_settings.sqlite_db_path).expanduser()
    if not db_path.is_absolute():
        db_path = (config_path.parent / db_path).resolve()
    run_settings = run_settings.model_copy(update={"sqlite_db_path": str(db_path)})

    resolved_surfaces = resolve_surfaces(tracker_config, surfaces)

    logger.info(
        f"Loaded config {config_path}: {len(tracker_config.clients)} clients, "
        f"surfaces={', '.join(resolved_surfaces)}"
    )

    return RuntimeConfig(
        run_settings=run_settings,
        surfaces=resolved_surfaces,
        clients=tracker_config.clients,
    )
