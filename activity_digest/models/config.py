"""Configuration management for the activity digest."""

import os
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from activity_digest.fetcher.errors import ConfigurationError
from activity_digest.fetcher.retry_manager import CIRCUIT_BREAKER_PROFILES, RETRY_PROFILES
from activity_digest.models.data_models import CircuitBreakerConfig, RetryConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class DigestConfig(BaseModel):
    """Main digest configuration."""

    # GitLab connection
    gitlab_base_url: str = Field(default="https://gitlab.com", description="GitLab instance URL")
    gitlab_access_token: Optional[str] = Field(default=None, description="Personal access token")
    gitlab_project_ids: List[str] = Field(
        default_factory=list,
        description="Project ids to scan; empty means every project the user is a member of",
    )

    # Fan-out
    project_concurrency: int = Field(default=5, description="Projects fetched concurrently")
    fetch_notes: bool = Field(default=True, description="Fetch comments at all")
    fetch_mr_notes: bool = Field(default=True, description="Fetch merge request comments")

    # Resilience
    retry_profile: str = Field(default="conservative", description="Retry profile name")
    enable_circuit_breaker: bool = Field(default=True, description="Guard calls with circuit breakers")
    circuit_breaker_profile: str = Field(default="api", description="Circuit breaker profile name")
    request_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Output
    output_directory: str = Field(default="out", description="Output directory for results")
    output_filename: str = Field(default="digest.json", description="Output JSON filename")

    @field_validator('gitlab_base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip('/')

    @field_validator('gitlab_project_ids', mode='before')
    @classmethod
    def split_project_ids(cls, v: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(',') if part.strip()]
        if isinstance(v, (list, tuple)):
            return [str(part).strip() for part in v if str(part).strip()]
        return v

    @field_validator('project_concurrency')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Validate concurrency is positive."""
        if v <= 0:
            raise ValueError(f"project_concurrency must be positive, got: {v}")
        return v

    @field_validator('request_timeout')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"request_timeout must be positive, got: {v}")
        return v

    @field_validator('retry_profile')
    @classmethod
    def validate_retry_profile(cls, v: str) -> str:
        if v not in RETRY_PROFILES:
            raise ValueError(f"Unknown retry_profile {v!r}, expected one of {sorted(RETRY_PROFILES)}")
        return v

    @field_validator('circuit_breaker_profile')
    @classmethod
    def validate_breaker_profile(cls, v: str) -> str:
        if v not in CIRCUIT_BREAKER_PROFILES:
            raise ValueError(
                f"Unknown circuit_breaker_profile {v!r}, expected one of {sorted(CIRCUIT_BREAKER_PROFILES)}"
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got: {v}")
        return level

    @property
    def retry_config(self) -> RetryConfig:
        return RETRY_PROFILES[self.retry_profile]

    @property
    def circuit_breaker_config(self) -> Optional[CircuitBreakerConfig]:
        if not self.enable_circuit_breaker:
            return None
        return CIRCUIT_BREAKER_PROFILES[self.circuit_breaker_profile]

    @property
    def gitlab_configured(self) -> bool:
        return bool(self.gitlab_base_url and self.gitlab_access_token)

    @property
    def output_path(self) -> Path:
        """Get full output file path."""
        return Path(self.output_directory) / self.output_filename

    # Environment variable overrides
    ENV_MAPPINGS: ClassVar[Dict[str, str]] = {
        "GITLAB_BASE_URL": "gitlab_base_url",
        "GITLAB_ACCESS_TOKEN": "gitlab_access_token",
        "GITLAB_PROJECT_IDS": "gitlab_project_ids",
        "GITLAB_PROJECT_CONCURRENCY": "project_concurrency",
        "GITLAB_FETCH_NOTES": "fetch_notes",
        "GITLAB_FETCH_MR_NOTES": "fetch_mr_notes",
        "DIGEST_RETRY_PROFILE": "retry_profile",
        "DIGEST_LOG_LEVEL": "log_level",
        "DIGEST_REQUEST_TIMEOUT": "request_timeout",
    }

    @classmethod
    def env_overrides(cls, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Field values taken from environment variables that are set."""
        environ = os.environ if environ is None else environ
        return {
            field_name: environ[env_var]
            for env_var, field_name in cls.ENV_MAPPINGS.items()
            if env_var in environ
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DigestConfig":
        """Create configuration with environment variable overrides."""
        return cls(**cls.env_overrides(environ))


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(
        self,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config_file = config_file or Path("config/config.yaml")
        self.environ = environ
        self._config: Optional[DigestConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> DigestConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged DigestConfig instance

        Raises:
            ConfigurationError: If the YAML file is unreadable
            ValueError: If configuration validation fails
        """
        config_dict: Dict[str, Any] = {}

        # Load from YAML file if it exists
        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                try:
                    yaml_config = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid YAML in {self.config_file}: {e}") from e
            if yaml_config:
                if not isinstance(yaml_config, dict):
                    raise ConfigurationError(
                        f"{self.config_file} must contain a mapping, got {type(yaml_config).__name__}"
                    )
                config_dict.update(yaml_config)

        # Environment overrides YAML
        config_dict.update(DigestConfig.env_overrides(self.environ))

        # Apply CLI overrides (highest precedence)
        if cli_overrides:
            config_dict.update({k: v for k, v in cli_overrides.items() if v is not None})

        self._config = DigestConfig(**config_dict)
        return self._config

    @property
    def config(self) -> DigestConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
