"""Configuration management for the infrastructure planner."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models.plan import Action


@dataclass
class PlanningPolicy:
    """
    Policy configuration for plan building.

    Controls how actions are defaulted and how batches are shaped.
    """

    # Action used for entities the caller supplies no action for
    default_action: Action = Action.CREATE

    # Keep data source reads as plan nodes; when False they are treated as
    # already satisfied and ordering passes through them
    include_reads: bool = True

    # Split dependency levels larger than this into consecutive batches
    max_batch_size: int | None = None

    def __post_init__(self) -> None:
        self.default_action = Action(self.default_action)
        if self.max_batch_size is not None and self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be positive, got {self.max_batch_size}")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    file: Path | None = None


@dataclass
class PlannerConfig:
    """
    Complete configuration for the planner.

    This combines all configuration sections.
    """

    policy: PlanningPolicy = field(default_factory=PlanningPolicy)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> "PlannerConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            PlannerConfig instance

        Raises:
            ValueError: If the file is not valid YAML or not a mapping
        """
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}") from e

        if data is None:
            data = {}

        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid configuration file structure in {config_path}: "
                f"expected dictionary, got {type(data).__name__}"
            )

        policy_data = data.get("policy") or {}
        policy = PlanningPolicy(**policy_data)

        logging_data = dict(data.get("logging") or {})
        # Convert file path string to Path if present
        if logging_data.get("file"):
            logging_data["file"] = Path(logging_data["file"])
        logging = LoggingConfig(**logging_data)

        return cls(policy=policy, logging=logging)
