"""
Configuration management for LadderStream
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TranscodingConfig(BaseModel):
    ffmpeg_path: str = "auto"
    ffprobe_path: str = "auto"
    max_concurrent_jobs: int = Field(default=2, ge=1)
    segment_duration: int = Field(default=10, ge=1)
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    # Encoder preset for the preview clip; variants carry their own preset
    preview_preset: str = "fast"
    preview_crf: int = 23
    preview_max_width: int = 640
    preview_max_height: int = 360
    thumbnail_quality: int = 2  # mjpeg qscale, lower is better
    stderr_tail_lines: int = 40


class JobsConfig(BaseModel):
    cleanup_interval_seconds: int = 300
    job_ttl_seconds: int = 3600
    max_retained_jobs: int = 500
    callback_timeout_seconds: float = 10.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    file: Optional[str] = None


class LadderStreamConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LADDERSTREAM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    transcoding: TranscodingConfig = Field(default_factory=TranscodingConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_config_file() -> Optional[Path]:
    """Find the configuration file in standard locations."""
    search_paths = [
        Path.cwd() / "ladderstream.yaml",
        Path.cwd() / "ladderstream.yml",
        Path.cwd() / "config" / "ladderstream.yaml",
        Path.home() / ".config" / "ladderstream" / "ladderstream.yaml",
        Path("/etc/ladderstream/ladderstream.yaml"),
    ]
    
    for path in search_paths:
        if path.exists():
            return path
    
    return None


def load_config(config_path: Optional[str] = None) -> LadderStreamConfig:
    """Load configuration from YAML file, environment, or defaults."""
    config_file = Path(config_path) if config_path else find_config_file()
    
    if config_file and config_file.exists():
        with open(config_file, "r") as f:
            yaml_data = yaml.safe_load(f) or {}
        return LadderStreamConfig(**yaml_data)
    
    return LadderStreamConfig()


# Process-wide default, used when a component is built without a config
_config: Optional[LadderStreamConfig] = None


def get_config() -> LadderStreamConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: LadderStreamConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
