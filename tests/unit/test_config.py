"""Unit tests for configuration management."""

from pathlib import Path

import pytest
import yaml

from src.infraplan.config import LoggingConfig, PlannerConfig, PlanningPolicy
from src.infraplan.models.plan import Action


class TestPlanningPolicy:
    """Test PlanningPolicy dataclass."""

    def test_default_values(self):
        """Test default policy configuration values."""
        policy = PlanningPolicy()

        assert policy.default_action == Action.CREATE
        assert policy.include_reads is True
        assert policy.max_batch_size is None

    def test_action_from_string(self):
        """Test string actions are converted to Action."""
        policy = PlanningPolicy(default_action="noop")

        assert policy.default_action is Action.NOOP

    def test_unknown_default_action(self):
        """Test unknown actions are rejected."""
        with pytest.raises(ValueError):
            PlanningPolicy(default_action="recreate")

    @pytest.mark.parametrize("size", [0, -3])
    def test_non_positive_batch_size(self, size):
        """Test max_batch_size must be positive."""
        with pytest.raises(ValueError, match="max_batch_size"):
            PlanningPolicy(max_batch_size=size)


class TestLoggingConfig:
    """Test LoggingConfig dataclass."""

    def test_default_values(self):
        """Test default logging configuration values."""
        config = LoggingConfig()

        assert config.level == "INFO"
        assert config.format == "console"
        assert config.file is None


class TestPlannerConfigFromFile:
    """Test PlannerConfig.from_file()."""

    def test_full_file(self, tmp_path):
        """Test loading every section."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text(
            yaml.safe_dump(
                {
                    "policy": {
                        "default_action": "update",
                        "include_reads": False,
                        "max_batch_size": 25,
                    },
                    "logging": {"level": "DEBUG", "format": "json", "file": "logs/plan.log"},
                }
            )
        )

        config = PlannerConfig.from_file(config_file)

        assert config.policy.default_action == Action.UPDATE
        assert config.policy.include_reads is False
        assert config.policy.max_batch_size == 25
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.logging.file == Path("logs/plan.log")

    def test_partial_file_keeps_defaults(self, tmp_path):
        """Test missing sections fall back to defaults."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text("policy:\n  max_batch_size: 5\n")

        config = PlannerConfig.from_file(config_file)

        assert config.policy.max_batch_size == 5
        assert config.policy.default_action == Action.CREATE
        assert config.logging == LoggingConfig()

    def test_empty_file(self, tmp_path):
        """Test an empty file gives the default configuration."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text("")

        assert PlannerConfig.from_file(config_file) == PlannerConfig()

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML raises ValueError."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text("policy: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            PlannerConfig.from_file(config_file)

    def test_non_mapping_root(self, tmp_path):
        """Test the root must be a mapping."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text("- policy\n- logging\n")

        with pytest.raises(ValueError, match="expected dictionary, got list"):
            PlannerConfig.from_file(config_file)

    def test_unknown_policy_key(self, tmp_path):
        """Test unknown settings are not silently ignored."""
        config_file = tmp_path / "planner.yaml"
        config_file.write_text("policy:\n  parallelism: 4\n")

        with pytest.raises(TypeError):
            PlannerConfig.from_file(config_file)

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            PlannerConfig.from_file(tmp_path / "absent.yaml")
