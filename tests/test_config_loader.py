"""
Tests for config.loader and config.schema.

Tests cover:
- Loading a valid YAML file into RuntimeConfig
- API key resolution from environment variables (never from YAML)
- Surface selection and defaults
- Relative database path resolution
- Validation failures: empty files, YAML syntax, schema rules, duplicates
"""

from pathlib import Path

import pytest
import yaml

from llm_serp_tracker.config.loader import load_config, read_config_file
from llm_serp_tracker.config.schema import (
    ClientConfig,
    QueryConfig,
    RunSettings,
    Surface,
    SurfaceConfig,
)
from llm_serp_tracker.exceptions import (
    APIKeyMissingError,
    ConfigFileNotFoundError,
    ConfigValidationError,
)


@pytest.fixture
def config_data(tmp_path):
    return {
        "run_settings": {
            "sqlite_db_path": str(tmp_path / "tracker.db"),
            "max_concurrent_requests": 5,
        },
        "surfaces": {
            "openai": {"model_name": "gpt-4o-mini", "env_api_key": "OPENAI_API_KEY"},
            "claude": {
                "model_name": "claude-4.5",
                "env_api_key": "ANTHROPIC_API_KEY",
                "temperature": 0.3,
                "max_tokens": 800,
            },
        },
        "clients": [
            {
                "id": "acme-dental",
                "name": "Acme Dental",
                "domains": ["acmedental.com", " acmedental.com ", ""],
                "competitors": ["smileco.com"],
                "queries": [
                    {
                        "id": "best-dentist",
                        "text": "Who is the best dentist in Austin?",
                        "type": "local",
                        "geo": "Austin, TX",
                    },
                    {"id": "acme-reviews", "text": "Is Acme Dental good?", "type": "branded"},
                ],
            }
        ],
    }


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="tracker.config.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")


class TestLoadConfig:
    def test_loads_valid_config(self, config_data, write_config, api_keys, tmp_path):
        config = load_config(write_config(config_data))

        assert config.run_settings.sqlite_db_path == str(tmp_path / "tracker.db")
        assert config.run_settings.max_concurrent_requests == 5
        assert config.run_settings.seed == 42
        assert list(config.surfaces) == [Surface.OPENAI, Surface.CLAUDE]

        openai = config.surfaces[Surface.OPENAI]
        assert openai.api_key == "sk-test-openai"
        assert openai.model_name == "gpt-4o-mini"
        assert openai.seed == 42

        claude = config.surfaces[Surface.CLAUDE]
        assert claude.temperature == 0.3
        assert claude.max_tokens == 800

        client = config.get_client("acme-dental")
        assert client.domains == ["acmedental.com"]
        assert [q.id for q in client.queries] == ["best-dentist", "acme-reviews"]
        assert config.get_client("unknown") is None

    def test_only_requested_surfaces_need_keys(self, config_data, write_config, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        config = load_config(write_config(config_data), [Surface.OPENAI])

        assert list(config.surfaces) == [Surface.OPENAI]

    def test_missing_api_key(self, config_data, write_config, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        with pytest.raises(APIKeyMissingError, match=r"Environment variable \$OPENAI_API_KEY not set"):
            load_config(write_config(config_data))

    def test_blank_api_key_counts_as_missing(self, config_data, write_config, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "   ")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        with pytest.raises(APIKeyMissingError):
            load_config(write_config(config_data))

    def test_unconfigured_surface_requested(self, config_data, write_config, api_keys):
        del config_data["surfaces"]["claude"]

        with pytest.raises(ConfigValidationError, match="not configured"):
            load_config(write_config(config_data), [Surface.CLAUDE])

    def test_default_surfaces(self, config_data, write_config, api_keys):
        del config_data["surfaces"]

        config = load_config(write_config(config_data))

        assert config.surfaces[Surface.OPENAI].model_name == "gpt-5"
        assert config.surfaces[Surface.CLAUDE].model_name == "claude-4.5"

    def test_relative_db_path_resolves_against_config_dir(
        self, config_data, write_config, api_keys, tmp_path
    ):
        config_data["run_settings"]["sqlite_db_path"] = "./output/tracker.db"
        subdir = tmp_path / "configs"
        subdir.mkdir()

        config = load_config(write_config(config_data, name="configs/tracker.yaml"))

        assert Path(config.run_settings.sqlite_db_path) == (subdir / "output" / "tracker.db").resolve()

    def test_api_key_never_read_from_yaml(self, config_data, write_config, monkeypatch):
        config_data["surfaces"]["openai"]["api_key"] = "sk-in-yaml"
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

        config = load_config(write_config(config_data))

        assert config.surfaces[Surface.OPENAI].api_key == "sk-test-openai"


class TestReadConfigFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            read_config_file(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="empty"):
            read_config_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("invalid: yaml: syntax: [", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            read_config_file(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="must be a mapping"):
            read_config_file(path)

    def test_schema_errors_are_listed_by_location(self, config_data, write_config):
        config_data["clients"][0]["queries"][0]["type"] = "weird"

        with pytest.raises(ConfigValidationError, match=r"clients\.0\.queries\.0\.type"):
            read_config_file(write_config(config_data))

    def test_no_clients(self, config_data, write_config):
        config_data["clients"] = []

        with pytest.raises(ConfigValidationError, match="At least one client"):
            read_config_file(write_config(config_data))

    def test_duplicate_client_ids(self, config_data, write_config):
        config_data["clients"].append(dict(config_data["clients"][0]))

        with pytest.raises(ConfigValidationError, match="Duplicate client ids: acme-dental"):
            read_config_file(write_config(config_data))

    def test_unknown_surface(self, config_data, write_config):
        config_data["surfaces"]["gemini"] = {"model_name": "x", "env_api_key": "Y"}

        with pytest.raises(ConfigValidationError):
            read_config_file(write_config(config_data))


class TestSchemaModels:
    def test_duplicate_query_ids_rejected(self):
        with pytest.raises(ValueError, match="Duplicate query ids"):
            ClientConfig(
                id="acme",
                name="Acme",
                queries=[
                    QueryConfig(id="q1", text="one"),
                    QueryConfig(id="q1", text="two"),
                ],
            )

    @pytest.mark.parametrize("query_id", ["", "has space", "-leading", "a/b"])
    def test_invalid_query_ids(self, query_id):
        with pytest.raises(ValueError):
            QueryConfig(id=query_id, text="What?")

    def test_query_defaults(self):
        query = QueryConfig(id="q1", text="  What is best?  ")

        assert query.text == "What is best?"
        assert query.type == "category"
        assert query.weight == 1.0

    @pytest.mark.parametrize(
        "kwargs",
        [{"temperature": 2.5}, {"top_p": 0.0}, {"max_tokens": 0}, {"model_name": " "}],
    )
    def test_surface_config_bounds(self, kwargs):
        fields = {"model_name": "gpt-5", "env_api_key": "OPENAI_API_KEY", **kwargs}
        with pytest.raises(ValueError):
            SurfaceConfig(**fields)

    @pytest.mark.parametrize("value", [0, 101])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValueError, match="max_concurrent_requests"):
            RunSettings(max_concurrent_requests=value)
