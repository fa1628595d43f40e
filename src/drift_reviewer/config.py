"""
Configuration Management

System configuration for the drift reviewer: completion service,
GitHub access, analysis limits, model validators and logging.
"""

import os
import yaml
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any
from pathlib import Path
import logging

from .errors import ConfigurationError, ErrorCode


SUPPORTED_PROVIDERS = {"anthropic"}
SUPPORTED_MODEL_FORMATS = {"likec4", "structurizr"}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class AIConfig:
    """Completion service settings"""
    provider: str = "anthropic"
    api_key: Optional[str] = None
    fast_model: str = "claude-haiku-4-5-20251001"
    advanced_model: str = "claude-sonnet-4-5-20250929"
    timeout_seconds: float = 120.0


@dataclass
class GitHubConfig:
    """GitHub API settings"""
    token: Optional[str] = None
    model_repo_pr_token: Optional[str] = None
    api_base_url: str = "https://api.github.com"
    timeout_seconds: int = 30


@dataclass
class AnalysisConfig:
    """Analysis pipeline settings"""
    model_format: str = "likec4"
    max_files_per_diff: int = 50
    max_lines_per_diff: int = 5000
    skip_file_filtering: bool = False
    run_timeout_seconds: Optional[float] = None


@dataclass
class ValidationConfig:
    """External DSL tooling used for sandbox validation and model loading"""
    structurizr_cli_path: Optional[str] = None
    structurizr_docker_image: str = "structurizr/structurizr:2026.02.01"
    likec4_command: str = "likec4"
    timeout_seconds: int = 120


@dataclass
class LoggingConfig:
    """Logging settings"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class AppConfig:
    """Complete application configuration"""
    ai: AIConfig = field(default_factory=AIConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables"""
        return cls(
            ai=AIConfig(
                provider=os.getenv("AI_PROVIDER", "anthropic"),
                api_key=os.getenv("ANTHROPIC_API_KEY"),
                fast_model=os.getenv("ANTHROPIC_FAST_MODEL", "claude-haiku-4-5-20251001"),
                advanced_model=os.getenv("ANTHROPIC_ADVANCED_MODEL", "claude-sonnet-4-5-20250929"),
                timeout_seconds=float(os.getenv("AI_TIMEOUT", "120")),
            ),
            github=GitHubConfig(
                token=os.getenv("GITHUB_TOKEN"),
                model_repo_pr_token=os.getenv("MODEL_REPO_PR_TOKEN"),
                api_base_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
                timeout_seconds=int(os.getenv("GITHUB_TIMEOUT", "30")),
            ),
            analysis=AnalysisConfig(
                model_format=os.getenv("MODEL_FORMAT", "likec4"),
                max_files_per_diff=int(os.getenv("MAX_FILES_PER_DIFF", "50")),
                max_lines_per_diff=int(os.getenv("MAX_LINES_PER_DIFF", "5000")),
                skip_file_filtering=_env_bool("SKIP_FILE_FILTERING"),
                run_timeout_seconds=_env_optional_float("RUN_TIMEOUT_SECONDS"),
            ),
            validation=ValidationConfig(
                structurizr_cli_path=os.getenv("STRUCTURIZR_CLI_PATH"),
                structurizr_docker_image=os.getenv(
                    "STRUCTURIZR_DOCKER_IMAGE", "structurizr/structurizr:2026.02.01"
                ),
                likec4_command=os.getenv("LIKEC4_COMMAND", "likec4"),
                timeout_seconds=int(os.getenv("VALIDATION_TIMEOUT", "120")),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
                file_path=os.getenv("LOG_FILE"),
                max_file_size=int(os.getenv("LOG_MAX_SIZE", str(10 * 1024 * 1024))),
                backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            ),
            debug=_env_bool("VERBOSE") or _env_bool("DEBUG"),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "AppConfig":
        """Load configuration from a YAML file"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(
                f"Config file not found: {config_path}",
                code=ErrorCode.MISSING_CONFIG,
                context={"path": config_path},
            )

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        try:
            return cls(
                ai=AIConfig(**config_data.get('ai', {})),
                github=GitHubConfig(**config_data.get('github', {})),
                analysis=AnalysisConfig(**config_data.get('analysis', {})),
                validation=ValidationConfig(**config_data.get('validation', {})),
                logging=LoggingConfig(**config_data.get('logging', {})),
                debug=config_data.get('debug', False),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key in {config_path}: {e}")

    def validate(self, require_credentials: bool = True) -> None:
        """Validate configuration; raises ConfigurationError listing every problem"""
        errors = []

        if self.ai.provider not in SUPPORTED_PROVIDERS:
            errors.append(f"Unsupported AI provider: {self.ai.provider}")

        if require_credentials:
            if not self.ai.api_key:
                errors.append("ANTHROPIC_API_KEY is required")
            if not self.github.token:
                errors.append("GitHub token is required")

        if self.analysis.model_format not in SUPPORTED_MODEL_FORMATS:
            errors.append(f"Unsupported model format: {self.analysis.model_format}")

        if self.analysis.max_files_per_diff <= 0:
            errors.append("max_files_per_diff must be positive")
        if self.analysis.max_lines_per_diff <= 0:
            errors.append("max_lines_per_diff must be positive")

        if self.analysis.run_timeout_seconds is not None and self.analysis.run_timeout_seconds <= 0:
            errors.append("run_timeout_seconds must be positive when set")

        valid_log_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if self.logging.level.upper() not in valid_log_levels:
            errors.append(f"Invalid log level: {self.logging.level}")

        if errors:
            code = ErrorCode.MISSING_API_KEY if any("required" in e for e in errors) else ErrorCode.INVALID_CONFIG
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                code=code,
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary without secrets"""
        data = asdict(self)
        data['ai'].pop('api_key', None)
        data['github'].pop('token', None)
        data['github'].pop('model_repo_pr_token', None)
        return data


class ConfigManager:
    """Configuration manager"""

    def __init__(self, config: Optional[AppConfig] = None, require_credentials: bool = True):
        self._config = config or AppConfig.from_env()
        self._require_credentials = require_credentials
        self._config.validate(require_credentials=require_credentials)
        self._setup_logging()

    @property
    def config(self) -> AppConfig:
        """Current configuration"""
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration using 'section.field' keys"""
        for key, value in kwargs.items():
            if '.' in key:
                section, field_name = key.split('.', 1)
                target = getattr(self._config, section, None)
                if target is None or not hasattr(target, field_name):
                    raise ConfigurationError(f"Unknown configuration key: {key}")
                setattr(target, field_name, value)
            elif hasattr(self._config, key):
                setattr(self._config, key, value)
            else:
                raise ConfigurationError(f"Unknown configuration key: {key}")

        self._config.validate(require_credentials=self._require_credentials)
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Configure root logging"""
        level = logging.DEBUG if self._config.debug else getattr(logging, self._config.logging.level.upper())
        logging.basicConfig(level=level, format=self._config.logging.format)
        logging.getLogger().setLevel(level)

        # Rotating file output when a log file is configured
        if self._config.logging.file_path:
            from logging.handlers import RotatingFileHandler

            root_logger = logging.getLogger()
            for existing in root_logger.handlers:
                if isinstance(existing, RotatingFileHandler) and \
                        existing.baseFilename == os.path.abspath(self._config.logging.file_path):
                    return

            handler = RotatingFileHandler(
                self._config.logging.file_path,
                maxBytes=self._config.logging.max_file_size,
                backupCount=self._config.logging.backup_count,
            )
            handler.setFormatter(logging.Formatter(self._config.logging.format))
            root_logger.addHandler(handler)


_config_manager: Optional[ConfigManager] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it from the environment on first use"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def update_config(**kwargs) -> None:
    """Update the process-wide configuration"""
    get_config()
    _config_manager.update_config(**kwargs)


def reset_config() -> None:
    """Drop the cached configuration (tests and long-running hosts)"""
    global _config_manager
    _config_manager = None
