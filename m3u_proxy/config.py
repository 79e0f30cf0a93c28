from pathlib import Path
import json
import logging

from croniter import croniter
from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from m3u_proxy.schemas import ProxyConfig


logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the proxy config file cannot be read or is invalid"""
    pass


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    The sources themselves live in the JSON file pointed to by ``config_path``.
    """

    config_path: str = "./config.json"
    log_level: str = "INFO"
    refresh_cron: str | None = None  # e.g. "0 */6 * * *", unset disables the scheduler
    refresh_misfire_grace_sec: int = 3600
    refresh_on_startup: bool = False  # serve: run one refresh right after startup
    download_timeout_sec: float = 120.0
    download_max_retries: int = 1  # 1 means a single attempt
    download_backoff_factor: float = 2.0
    epg_past_hours: int = 1  # Keep programmes that finished less than this long ago
    epg_future_hours: int = 48  # Keep programmes starting within this horizon
    epg_filter_timeout_sec: int = 600  # 0 disables timeout
    http_host: str = "0.0.0.0"
    http_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level name."""
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("refresh_cron", mode="before")
    @classmethod
    def parse_refresh_cron(cls, value):
        """Treat an empty cron expression as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str | None) -> str | None:
        """Validate cron expression is valid."""
        if value is None:
            return value
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("epg_past_hours", "epg_future_hours", "epg_filter_timeout_sec", "refresh_misfire_grace_sec")
    @classmethod
    def validate_non_negative(cls, value: int, info) -> int:
        """Ensure window and timeout values are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("download_max_retries", "http_port")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("download_timeout_sec", "download_backoff_factor")
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure floating-point settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @model_validator(mode="after")
    def validate_epg_window(self):
        """Validate the EPG window is not empty."""
        if self.epg_past_hours == 0 and self.epg_future_hours == 0:
            raise ValueError(
                "At least one of epg_past_hours or epg_future_hours must be > 0"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Config File: %s", self.config_path)
        logger.info("  Refresh Schedule: %s", self.refresh_cron or "disabled")
        logger.info("  Refresh On Startup: %s", self.refresh_on_startup)
        logger.info("  Download Timeout: %ss", self.download_timeout_sec)
        logger.info("  Download Attempts: %s", self.download_max_retries)
        logger.info(
            "  EPG Window: -%sh / +%sh", self.epg_past_hours, self.epg_future_hours
        )
        logger.info(
            "  EPG Filter Timeout: %s seconds",
            self.epg_filter_timeout_sec or "disabled",
        )


settings = CustomSettings()


def load_proxy_config(path: str | Path) -> ProxyConfig:
    """
    Load and validate the JSON proxy configuration

    Args:
        path: Path to the config file

    Returns:
        Validated ProxyConfig

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation
    """
    path = Path(path)
    logger.debug(f"Loading proxy config from {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config file '{path}': {exc}") from exc

    try:
        config = ProxyConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file '{path}': {exc}") from exc

    logger.info(
        "Proxy config loaded: %s source(s), import=%s, export=%s",
        len(config.sources),
        config.import_folder,
        config.export_folder,
    )
    return config


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
