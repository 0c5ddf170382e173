"""
Configuration schema models for LLM SERP Tracker.

Pydantic v2 models for validating tracker.config.yaml. API keys never live in
the YAML file: each surface names the environment variable that holds its
key, and config.loader resolves it into RuntimeSurface.

Models:
    Surface: Audited LLM surfaces (openai, claude)
    SurfaceConfig: Model name, sampling parameters and key variable per surface
    RunSettings: Database path, concurrency and seed
    QueryConfig: One tracked query
    ClientConfig: Brand identity plus its query panel
    TrackerConfig: Root model (validates the entire YAML)
    RuntimeSurface: SurfaceConfig with the resolved API key
    RuntimeConfig: Validated config with resolved keys, passed to the runner
"""

import re
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")

QueryType = Literal["branded", "category", "comparison", "local", "faq"]


class Surface(StrEnum):
    """LLM-backed answer source being audited."""

    OPENAI = "openai"
    CLAUDE = "claude"


DEFAULT_MODELS: dict[Surface, str] = {
    Surface.OPENAI: "gpt-5",
    Surface.CLAUDE: "claude-4.5",
}

DEFAULT_API_KEY_VARS: dict[Surface, str] = {
    Surface.OPENAI: "OPENAI_API_KEY",
    Surface.CLAUDE: "ANTHROPIC_API_KEY",
}


def _validate_id(v: str, field_name: str) -> str:
    if not v or v.isspace():
        raise ValueError(f"{field_name} cannot be empty")
    if not ID_PATTERN.match(v):
        raise ValueError(
            f"{field_name} must start with a letter or digit and contain only "
            f"letters, digits, '-' or '_': {v!r}"
        )
    return v


class SurfaceConfig(BaseModel):
    """
    Per-surface model configuration.

    Attributes:
        model_name: Model identifier, e.g. "gpt-5" or "claude-4.5"
        env_api_key: Environment variable holding the API key
        temperature: Sampling temperature (0-2). Ignored by OpenAI models that
            do not accept sampling overrides.
        top_p: Nucleus sampling (0-1). Same caveat as temperature.
        max_tokens: Completion budget (Claude requires one)
        base_url: Optional API base URL override (proxies, gateways)
    """

    model_name: str
    env_api_key: str
    temperature: float = 0.0
    top_p: float = 1.0
    max_tokens: int = 1200
    base_url: str | None = None

    @field_validator("model_name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Validate model_name is non-empty."""
        if not v or v.isspace():
            raise ValueError("model_name cannot be empty")
        return v

    @field_validator("env_api_key")
    @classmethod
    def validate_env_api_key(cls, v: str) -> str:
        """Validate env_api_key is non-empty."""
        if not v or v.isspace():
            raise ValueError("env_api_key cannot be empty")
        return v

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"temperature must be between 0 and 2, got {v}")
        return v

    @field_validator("top_p")
    @classmethod
    def validate_top_p(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError(f"top_p must be in (0, 1], got {v}")
        return v

    @field_validator("max_tokens")
    @classmethod
    def validate_max_tokens(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_tokens must be positive, got {v}")
        return v


def default_surfaces() -> dict[Surface, SurfaceConfig]:
    """Both surfaces with their default models and key variables."""
    return {
        surface: SurfaceConfig(
            model_name=DEFAULT_MODELS[surface],
            env_api_key=DEFAULT_API_KEY_VARS[surface],
        )
        for surface in Surface
    }


class RunSettings(BaseModel):
    """
    Runtime settings for crawls.

    Attributes:
        sqlite_db_path: SQLite database path. Relative paths resolve against
            the directory of the config file.
        max_concurrent_requests: Queries in flight per surface (1-100)
        seed: Sampling seed forwarded to surfaces that support one
    """

    sqlite_db_path: str = "./output/tracker.db"
    max_concurrent_requests: int = 40
    seed: int | None = 42

    @field_validator("sqlite_db_path")
    @classmethod
    def validate_sqlite_db_path(cls, v: str) -> str:
        """Validate sqlite_db_path is non-empty."""
        if not v or v.isspace():
            raise ValueError("sqlite_db_path cannot be empty")
        return v

    @field_validator("max_concurrent_requests")
    @classmethod
    def validate_max_concurrent_requests(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(
                f"max_concurrent_requests must be between 1 and 100, got {v}"
            )
        return v


class QueryConfig(BaseModel):
    """
    One tracked query.

    Attributes:
        id: Stable identifier; deltas join runs on it, so never reuse one
            for a different question
        text: Question as sent to the surface
        type: Query category used for reporting
        geo: Optional location label for local queries
        weight: Relative importance for reporting (> 0)
    """

    id: str
    text: str
    type: QueryType = "category"
    geo: str | None = None
    weight: float = 1.0

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _validate_id(v, "query id")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or v.isspace():
            raise ValueError("query text cannot be empty")
        return v.strip()

    @field_validator("weight")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"weight must be positive, got {v}")
        return v


class ClientConfig(BaseModel):
    """
    A tracked brand and its query panel.

    Attributes:
        id: Client identifier used on the command line and in the database
        name: Brand name matched in entity names and answer summaries
        domains: Domains owned by the brand (compared after normalization)
        competitors: Competitor domains, passed to the surfaces as context
        queries: Query panel
    """

    id: str
    name: str
    domains: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    queries: list[QueryConfig] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _validate_id(v, "client id")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or v.isspace():
            raise ValueError("client name cannot be empty")
        return v.strip()

    @field_validator("domains", "competitors")
    @classmethod
    def validate_domain_list(cls, v: list[str]) -> list[str]:
        """Strip entries, drop blanks and duplicates, keep order."""
        cleaned: list[str] = []
        for entry in v:
            entry = entry.strip()
            if entry and entry not in cleaned:
                cleaned.append(entry)
        return cleaned

    @model_validator(mode="after")
    def validate_unique_query_ids(self) -> "ClientConfig":
        ids = [query.id for query in self.queries]
        duplicates = sorted({query_id for query_id in ids if ids.count(query_id) > 1})
        if duplicates:
            raise ValueError(
                f"Duplicate query ids for client {self.id!r}: {', '.join(duplicates)}"
            )
        return self


class TrackerConfig(BaseModel):
    """
    Root configuration model for tracker.config.yaml.

    Example YAML:
        run_settings:
          sqlite_db_path: ./output/tracker.db
          max_concurrent_requests: 40
        surfaces:
          openai:
            model_name: gpt-5
            env_api_key: OPENAI_API_KEY
        clients:
          - id: acme-dental
            name: Acme Dental
            domains: [acmedental.com]
            queries:
              - id: best-dentist-austin
                text: Who is the best dentist in Austin?
                type: local
                geo: Austin, TX
    """

    run_settings: RunSettings = Field(default_factory=RunSettings)
    surfaces: dict[Surface, SurfaceConfig] = Field(default_factory=default_surfaces)
    clients: list[ClientConfig]

    @field_validator("surfaces")
    @classmethod
    def validate_surfaces(cls, v: dict[Surface, SurfaceConfig]) -> dict[Surface, SurfaceConfig]:
        if not v:
            raise ValueError("At least one surface must be configured")
        return v

    @field_validator("clients")
    @classmethod
    def validate_clients(cls, v: list[ClientConfig]) -> list[ClientConfig]:
        if not v:
            raise ValueError("At least one client must be configured")

        ids = [client.id for client in v]
        duplicates = sorted({client_id for client_id in ids if ids.count(client_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate client ids: {', '.join(duplicates)}")
        return v


class RuntimeSurface(BaseModel):
    """
    Surface configuration with its API key resolved from the environment.

    Created by config.loader; this is what connectors are built from.
    """

    surface: Surface
    model_name: str
    api_key: str
    temperature: float = 0.0
    top_p: float = 1.0
    max_tokens: int = 1200
    seed: int | None = None
    base_url: str | None = None


class RuntimeConfig(BaseModel):
    """
    Validated configuration with resolved API keys.

    Attributes:
        run_settings: Run settings, sqlite_db_path already resolved
        surfaces: Resolved surfaces (only those requested at load time)
        clients: Client panels from the config file
    """

    run_settings: RunSettings
    surfaces: dict[Surface, RuntimeSurface]
    clients: list[ClientConfig]

    def get_client(self, client_id: str) -> ClientConfig | None:
        for client in self.clients:
            if client.id == client_id:
                return client
        return None
