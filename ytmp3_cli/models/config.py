"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ytmp3_cli.models.quality import DEFAULT_LADDER
from ytmp3_cli.models.track import StrategyKind

DEFAULT_STRATEGY_ORDER = [
    StrategyKind.LIBRARY.value,
    StrategyKind.BINARY.value,
    StrategyKind.REDIRECT.value,
]

# name|url-template pairs; {video_id} is substituted per track
DEFAULT_CONVERTER_SERVICES = [
    "yt-download.org|https://yt-download.org/api/button/mp3/{video_id}",
    "y2mate|https://www.y2mate.com/mates/convert/{video_id}",
    "ytmp3.cc|https://ytmp3.cc/download/{video_id}",
]

SUPPORTED_CONTAINERS = ("m4a", "opus", "webm", "mp3", "aac", "vorbis", "flac", "wav")


def get_quality_info(quality: int) -> dict[str, str]:
    """Gets display information for a quality tier ordinal."""
    tier = DEFAULT_LADDER.tier(quality)
    return {"name": tier.name, "short": tier.short, "user_code": str(tier.ordinal)}


class PipelineConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Acquisition Settings
    quality: int = DEFAULT_LADDER.highest.ordinal
    max_workers: int = 3
    strategy_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGY_ORDER)
    )
    strategy_attempts: int = 3
    strategy_delay: float = 0.5
    converter_services: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONVERTER_SERVICES)
    )

    # External Tools
    ytdlp_path: str = "yt-dlp"
    ffmpeg_path: str = "ffmpeg"
    binary_container: str = "m4a"
    process_timeout: float = 300.0

    # Transcoding
    transcode_attempts: int = 2
    transcode_delay: float = 1.0
    verify_output: bool = False
    embed_artwork: bool = True

    # Network
    http_timeout: float = 60.0
    probe_timeout: float = 10.0

    # Filesystem & Logging
    scratch_dir: str = ""
    output_dir: str = "."
    json_log_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:
        """Ensures quality is one of the ladder's tiers."""
        if v not in DEFAULT_LADDER.ordinals:
            raise ValueError(
                f"Quality must be one of {DEFAULT_LADDER.ordinals} "
                "(1: lowest bitrate, 4: best)."
            )
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 16:
            raise ValueError("Max workers must be between 1 and 16.")
        return v

    @field_validator("strategy_attempts", "transcode_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Attempt counts must be between 1 and 10.")
        return v

    @field_validator("strategy_delay", "transcode_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delays cannot be negative.")
        return v

    @field_validator("process_timeout", "http_timeout", "probe_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive.")
        return v

    @field_validator("strategy_order")
    @classmethod
    def validate_strategy_order(cls, v: list[str]) -> list[str]:
        """Validates strategy names and rejects duplicates."""
        names = [s.strip().lower() for s in v if s.strip()]
        if not names:
            raise ValueError("At least one acquisition strategy is required.")
        valid = {kind.value for kind in StrategyKind}
        unknown = [n for n in names if n not in valid]
        if unknown:
            raise ValueError(
                f"Unknown strategies {unknown}. Valid strategies: {sorted(valid)}."
            )
        if len(set(names)) != len(names):
            raise ValueError("Each strategy may appear only once in strategy_order.")
        return names

    @field_validator("converter_services")
    @classmethod
    def validate_converter_services(cls, v: list[str]) -> list[str]:
        """Each service must look like 'name|https://...{video_id}...'."""
        for entry in v:
            name, sep, template = entry.partition("|")
            if not sep or not name.strip():
                raise ValueError(f"Converter service '{entry}' must be 'name|url'.")
            if not template.strip().startswith(("http://", "https://")):
                raise ValueError(f"Converter URL for '{name}' must be http(s).")
            if "{video_id}" not in template:
                raise ValueError(
                    f"Converter URL for '{name}' must contain '{{video_id}}'."
                )
        return v

    @field_validator("binary_container")
    @classmethod
    def validate_container(cls, v: str) -> str:
        v = v.lower().lstrip(".")
        if v not in SUPPORTED_CONTAINERS:
            raise ValueError(
                f"Container must be one of {', '.join(SUPPORTED_CONTAINERS)}."
            )
        return v

    @model_validator(mode="after")
    def validate_option_conflicts(self) -> "PipelineConfig":
        """Checks for conflicting options."""
        if (
            self.strategy_order == [StrategyKind.REDIRECT.value]
            and not self.converter_services
        ):
            raise ValueError(
                "The redirect strategy alone needs at least one converter service."
            )
        return self

    @property
    def strategy_kinds(self) -> list[StrategyKind]:
        return [StrategyKind(name) for name in self.strategy_order]

    def converter_service_pairs(self) -> list[tuple[str, str]]:
        """Returns (name, url_template) pairs."""
        pairs = []
        for entry in self.converter_services:
            name, _, template = entry.partition("|")
            pairs.append((name.strip(), template.strip()))
        return pairs

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
