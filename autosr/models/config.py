"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
)


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Recording
    save_to: str = str(Path("~/autosr").expanduser())
    user_agent: str = DEFAULT_USER_AGENT
    download_with: str = "streamlink"
    segment_threads: int = 4
    segment_timeout: float = 30.0
    http_timeout: float = 30.0

    # Tracking
    track_list: str = ""
    poll_interval: float = 60.0
    recover_timeout: float = 300.0
    recover_poll_interval: float = 10.0
    shutdown_grace: float = 5.0

    # Site modules
    hls_hosts: list[str] = Field(default_factory=list)

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("save_to", "track_list")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expands '~' so paths work regardless of the working directory."""
        return str(Path(v).expanduser()) if v else v

    @field_validator("segment_threads")
    @classmethod
    def validate_threads(cls, v: int) -> int:
        """Ensures a reasonable number of segment threads."""
        if v < 1 or v > 10:
            raise ValueError("Segment threads must be between 1 and 10.")
        return v

    @field_validator(
        "segment_timeout",
        "http_timeout",
        "poll_interval",
        "recover_timeout",
        "recover_poll_interval",
        "shutdown_grace",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts and intervals must be greater than zero.")
        return v

    @field_validator("hls_hosts")
    @classmethod
    def normalize_hosts(cls, v: list[str]) -> list[str]:
        return [h.strip().lower() for h in v if h.strip()]

    @model_validator(mode="after")
    def validate_recording(self) -> "AppConfig":
        """Validates that recordings have somewhere to go and something to run."""
        if not self.save_to:
            raise ValueError("'save_to' cannot be empty.")
        if not self.download_with:
            raise ValueError("'download_with' must name the downloader program.")
        if self.recover_poll_interval > self.recover_timeout:
            raise ValueError(
                "'recover_poll_interval' cannot be longer than 'recover_timeout'."
            )
        return self

    def get(self, key: str) -> str:
        """Opaque key lookup used by the downloader and site modules."""
        if key not in type(self).model_fields:
            raise KeyError(key)
        value = getattr(self, key)
        if isinstance(value, list):
            return ",".join(value)
        return str(value)

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
