"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, List, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class ProvidersConfig:
    """Provider credentials, endpoints and polling settings."""

    piapi_api_key: Optional[str] = None
    piapi_base_url: str = "https://api.piapi.ai/api/v1"
    runway_api_key: Optional[str] = None
    runway_base_url: str = "https://api.dev.runwayml.com/v1"
    runway_api_version: str = "2024-11-06"

    request_timeout: int = 60
    poll_interval: float = 5.0
    max_poll_attempts: int = 120
    default_cost_per_second: float = 0.04
    enabled: List[str] = field(
        default_factory=lambda: ["runway", "kling", "luma", "hailuo", "hunyuan", "veo"]
    )

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be positive, got {self.poll_interval}",
                config_key="providers.poll_interval",
            )
        if not 1 <= self.max_poll_attempts <= 1000:
            raise ConfigurationError(
                f"max_poll_attempts must be 1-1000, got {self.max_poll_attempts}",
                config_key="providers.max_poll_attempts",
            )

    def api_key_for(self, env_key: str) -> Optional[str]:
        """Resolve a provider API key from config, falling back to the environment."""
        configured = {
            "PIAPI_API_KEY": self.piapi_api_key,
            "RUNWAY_API_KEY": self.runway_api_key,
        }.get(env_key)
        return configured or os.getenv(env_key) or None


@dataclass
class WorkerConfig:
    """Generation job worker settings."""

    db_path: str = ".video-pipeline/jobs.db"
    poll_interval: float = 3.0
    stuck_job_minutes: int = 10
    max_retries: int = 3
    default_duration: int = 6
    default_aspect_ratio: str = "16:9"

    VALID_ASPECT_RATIOS = {"16:9", "9:16", "1:1"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be positive, got {self.poll_interval}",
                config_key="worker.poll_interval",
            )
        if not 0 <= self.max_retries <= 10:
            raise ConfigurationError(
                f"max_retries must be 0-10, got {self.max_retries}",
                config_key="worker.max_retries",
            )
        if self.default_aspect_ratio not in self.VALID_ASPECT_RATIOS:
            raise ConfigurationError(
                f"Invalid aspect ratio: {self.default_aspect_ratio}",
                config_key="worker.default_aspect_ratio",
            )


@dataclass
class QualityConfig:
    """Quality gate thresholds (scores are 0-100)."""

    auto_approve_threshold: int = 85
    min_scene_score: int = 70
    min_project_score: int = 75
    max_critical_issues: int = 0
    max_major_issues: int = 3
    require_user_approval: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate threshold ordering and ranges."""
        for name in ("auto_approve_threshold", "min_scene_score", "min_project_score"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(
                    f"{name} must be 0-100, got {value}",
                    config_key=f"quality.{name}",
                )
        if self.min_scene_score > self.auto_approve_threshold:
            raise ConfigurationError(
                "min_scene_score cannot exceed auto_approve_threshold",
                config_key="quality.min_scene_score",
            )


@dataclass
class AssemblySettings:
    """Assembly engine settings."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    work_dir: str = ""
    asset_root: str = "./assets"
    resolution: str = "1920x1080"
    fps: int = 30
    transition_duration: float = 0.5
    background_color: str = "black"
    final_crf: int = 23
    audio_bitrate: str = "128k"
    command_timeout: int = 600
    download_timeout: int = 120
    keep_work_dir: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if not re.match(r"^\d+x\d+$", self.resolution):
            raise ConfigurationError(
                f"Resolution must look like 1920x1080, got {self.resolution}",
                config_key="assembly.resolution",
            )
        if not 1 <= self.fps <= 120:
            raise ConfigurationError(
                f"fps must be 1-120, got {self.fps}",
                config_key="assembly.fps",
            )
        if not 0 <= self.final_crf <= 51:
            raise ConfigurationError(
                f"final_crf must be 0-51, got {self.final_crf}",
                config_key="assembly.final_crf",
            )


@dataclass
class StorageConfig:
    """Durable media storage settings."""

    backend: str = "local"
    local_path: str = "./output/media"
    public_base_url: Optional[str] = None
    bucket: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    key_prefix: str = "ai-videos"

    VALID_BACKENDS = {"local", "s3"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.backend not in self.VALID_BACKENDS:
            raise ConfigurationError(
                f"Invalid storage backend: {self.backend}",
                config_key="storage.backend",
            )
        if self.backend == "s3" and not self.bucket:
            raise ConfigurationError(
                "storage.bucket is required for the s3 backend",
                config_key="storage.bucket",
            )


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    def __post_init__(self):
        self.level = self.level.upper()
        if self.level not in self.VALID_LEVELS:
            raise ConfigurationError(
                f"Invalid log level: {self.level}",
                config_key="logging.level",
            )


# =============================================================================
# Main Configuration Class
# =============================================================================


SECTIONS = ("providers", "worker", "quality", "assembly", "storage", "logging")


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides a unified interface to all configuration settings with:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    assembly: AssemblySettings = field(default_factory=AssemblySettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    _raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to YAML config file (defaults.yaml)

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".video-pipeline" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        sections = {name: _strip_empty(data.get(name) or {}) for name in SECTIONS}
        try:
            return cls(
                providers=ProvidersConfig(**sections["providers"]),
                worker=WorkerConfig(**sections["worker"]),
                quality=QualityConfig(**sections["quality"]),
                assembly=AssemblySettings(**sections["assembly"]),
                storage=StorageConfig(**sections["storage"]),
                logging=LoggingConfig(**sections["logging"]),
                _raw=data,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {section: asdict(getattr(self, section)) for section in SECTIONS}


def _strip_empty(section: Dict[str, Any]) -> Dict[str, Any]:
    # Unset ${VAR} placeholders interpolate to "", which should mean "use the default"
    return {k: v for k, v in section.items() if v != ""}


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
