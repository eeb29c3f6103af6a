"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_RESOLVE_ENDPOINT = "https://www.tikwm.com/api/"
DEFAULT_ARCHIVE_NAME = "tiktok_videos_batch.zip"


class BatchConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Resolution scheduling
    group_size: int = 1
    pacing_delay: float = 1.3
    max_rate_limit_retries: int = 3
    rate_limit_base_delay: float = 2.0
    rate_limit_step_delay: float = 1.0

    # Relay timeouts (seconds)
    metadata_timeout: float = 8.0
    binary_timeout: float = 15.0

    # Upstream and input filtering
    resolve_endpoint: str = DEFAULT_RESOLVE_ENDPOINT
    source_domain: str = "tiktok.com"

    # Archive output
    archive_group_size: int = 3
    output_dir: str = "."
    archive_name: str = DEFAULT_ARCHIVE_NAME

    @field_validator("group_size")
    @classmethod
    def validate_group_size(cls, v: int) -> int:
        """Keeps resolution concurrency within what the upstream tolerates."""
        if v < 1 or v > 10:
            raise ValueError("Group size must be between 1 and 10.")
        return v

    @field_validator("archive_group_size")
    @classmethod
    def validate_archive_group_size(cls, v: int) -> int:
        if v < 1 or v > 16:
            raise ValueError("Archive group size must be between 1 and 16.")
        return v

    @field_validator(
        "pacing_delay", "rate_limit_base_delay", "rate_limit_step_delay"
    )
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays cannot be negative.")
        return v

    @field_validator("metadata_timeout", "binary_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be greater than zero.")
        return v

    @field_validator("max_rate_limit_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0 or v > 10:
            raise ValueError("Rate limit retries must be between 0 and 10.")
        return v

    @field_validator("resolve_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """The endpoint must be an absolute http(s) URL."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Resolve endpoint must be an absolute URL, got: {v}")
        return v

    @field_validator("source_domain")
    @classmethod
    def validate_source_domain(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError("Source domain must be a bare host name, e.g. tiktok.com.")
        return v.lower()

    @field_validator("archive_name")
    @classmethod
    def validate_archive_name(cls, v: str) -> str:
        if not v.lower().endswith(".zip"):
            raise ValueError("Archive name must end with '.zip'.")
        if "/" in v or "\\" in v:
            raise ValueError("Archive name cannot contain path separators.")
        return v

    @model_validator(mode="after")
    def validate_retry_budget(self) -> "BatchConfig":
        """Keeps the worst-case backoff of a single resolution bounded."""
        worst = sum(
            self.rate_limit_base_delay + n * self.rate_limit_step_delay
            for n in range(self.max_rate_limit_retries)
        )
        if worst > 120:
            raise ValueError(
                f"Rate limit backoff would wait up to {worst:.0f}s per link; "
                "lower the retries or delays."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
