import logging
import re
from typing import Any

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from iptv_service.services.classification import (
    RuleSet,
    build_rule_set,
    compile_exclude_rule,
)
from iptv_service.utils.timezone import load_timezone


logger = logging.getLogger(__name__)

DEFAULT_GROUP_RULES: list[dict[str, Any]] = [
    {"name": "央视", "rules": ["^(CCTV|中央).+?$"]},
    {"name": "卫视", "rules": ["^[^(热门)].+?卫视.*?$"]},
    {"name": "国际", "rules": ["^(CGTN|凤凰).+?$"]},
    {
        "name": "地方",
        "rules": [
            "^(SCTV|CDTV|四川乡村|峨眉电影).*?$",
            "^(浙江|杭州|民生|钱江|教科影视|好易购|西湖|青少体育).+?$",
            "^(湖北|武汉).+?$",
        ],
    },
    {"name": "专区", "rules": [".+?专区$"]},
]

DEFAULT_LOGO_RULES: list[dict[str, str]] = [
    {"rule": "^CCTV-?(.+?)(标清|高清|超清)?$", "name": "CCTV$G1"},
    {"rule": "^([^(热门)].+?)卫视(标清|高清|超清)?$", "name": "$G1卫视"},
    {"rule": "^CDTV-?(.+?)(标清|高清|超清)?$", "name": "CDTV$G1"},
    {"rule": "^SCTV-?(.+?)(标清|高清|超清)?$", "name": "SCTV$G1"},
    {"rule": "^CETV-?(.+?)(标清|高清|超清)?$", "name": "CETV$G1"},
    {"rule": "^(.+?)(标清|高清|超清)$", "name": "$G1"},
]

_HOST_PORT = re.compile(r"^[A-Za-z0-9.\-]+(:\d{1,5})?$")


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    List and mapping values are given as JSON in the environment.
    """

    provider_host: str = ""
    provider_jsessionid: str = ""
    provider_user_token: str = ""
    provider_headers: dict[str, str] = {}
    http_timeout_sec: float = 10.0

    channel_exclude_rule: str = "^.+?(画中画|单音轨|-体验)$"
    channel_group_rules: list[dict[str, Any]] = DEFAULT_GROUP_RULES
    channel_logo_rules: list[dict[str, str]] = DEFAULT_LOGO_RULES
    default_group: str = "其他"

    channel_refresh_interval_min: int = 60
    channel_refresh_max_retries: int = 3
    channel_refresh_retry_wait_sec: float = 30.0
    scheduler_misfire_grace_sec: int = 600

    epg_refresh_cron: str = "30 */6 * * *"
    epg_dialect: str = "indexed"
    epg_back_days: int = 7  # Days of catch-up listings to fetch
    epg_preview_days: int = 4  # Days of future listings to fetch
    epg_max_concurrency: int = 8

    timezone: str = "Asia/Shanghai"
    udpxy_urls: dict[str, str] = {}
    logo_dir: str = "./logos"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("provider_host")
    @classmethod
    def validate_provider_host(cls, value: str) -> str:
        """Validate provider host is host[:port] without scheme."""
        value = value.strip()
        if value and not _HOST_PORT.match(value):
            raise ValueError(f"provider_host must be host[:port] without scheme: {value}")
        return value

    @field_validator("http_timeout_sec")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        return value

    @field_validator("channel_exclude_rule")
    @classmethod
    def validate_exclude_rule(cls, value: str) -> str:
        """Validate the exclusion blacklist compiles."""
        compile_exclude_rule(value)
        return value

    @field_validator(
        "channel_refresh_interval_min",
        "channel_refresh_max_retries",
        "epg_max_concurrency",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("channel_refresh_retry_wait_sec", "scheduler_misfire_grace_sec")
    @classmethod
    def validate_non_negative(cls, value, info):
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("epg_back_days", "epg_preview_days")
    @classmethod
    def validate_day_ranges(cls, value: int, info) -> int:
        """Validate day range values are positive and reasonable."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        if value > 30:
            raise ValueError(f"{info.field_name} must be <= 30 days")
        return value

    @field_validator("epg_dialect")
    @classmethod
    def validate_dialect(cls, value: str) -> str:
        normalized = value.strip().lower()
        allowed = {"dated", "indexed"}
        if normalized not in allowed:
            raise ValueError(f"epg_dialect must be one of {sorted(allowed)}")
        return normalized

    @field_validator("epg_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        load_timezone(value)
        return value

    @field_validator("udpxy_urls")
    @classmethod
    def validate_udpxy_urls(cls, value: dict[str, str]) -> dict[str, str]:
        """Validate udpxy proxy URLs are HTTP/HTTPS."""
        for name, url in value.items():
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"udpxy URL '{name}' must be HTTP/HTTPS: {url}")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_classification_rules(self):
        """Reject the whole rule set if any pattern or logo template is invalid."""
        self.rule_set()

        if self.epg_back_days == 0 and self.epg_preview_days == 0:
            logger.warning("EPG window covers today only (epg_back_days and epg_preview_days are 0)")
        if not self.provider_host:
            logger.warning("PROVIDER_HOST not configured - channel refresh will fail")

        return self

    def rule_set(self) -> RuleSet:
        return build_rule_set(
            self.channel_group_rules,
            self.channel_logo_rules,
            self.default_group,
        )

    def default_udpxy_url(self, name: str | None = None) -> str:
        """Proxy URL by name, or the first one by sorted name if none is given."""
        if name:
            return self.udpxy_urls.get(name, "")
        for key in sorted(self.udpxy_urls):
            return self.udpxy_urls[key]
        return ""

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Provider Host: %s", self.provider_host or "not configured")
        logger.info("  HTTP Timeout: %ss", self.http_timeout_sec)
        logger.info("  Group Rules: %s, Logo Rules: %s", len(self.channel_group_rules), len(self.channel_logo_rules))
        logger.info(
            "  Channel Refresh: every %s min, %s attempt(s), %ss between attempts",
            self.channel_refresh_interval_min,
            self.channel_refresh_max_retries,
            self.channel_refresh_retry_wait_sec,
        )
        logger.info("  EPG Refresh Schedule: %s", self.epg_refresh_cron)
        logger.info("  EPG Dialect: %s", self.epg_dialect)
        logger.info("  EPG Window: -%s/+%s days", self.epg_back_days, self.epg_preview_days)
        logger.info("  EPG Concurrency: %s", self.epg_max_concurrency)
        logger.info("  Timezone: %s", self.timezone)
        logger.info("  udpxy Proxies: %s configured", len(self.udpxy_urls))
        logger.info("  Logo Directory: %s", self.logo_dir)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
