"""
Configuration module using Pydantic Settings for environment variable management.

Only essential environment variables are exposed. All other settings are hardcoded
for consistency and simplicity.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.

    Only essential configuration is loaded from environment variables.
    Naming and messaging defaults are hardcoded so clients see stable values.
    """

    # ============================================================
    # ENVIRONMENT VARIABLES (minimal set)
    # ============================================================

    # Application
    app_name: str = "clearframe"
    debug: bool = False
    log_level: str = "INFO"

    # Security - API authentication
    api_key: Optional[str] = None  # Required on mutating endpoints when set

    # FFmpeg binaries
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Engine working storage (staged inputs and outputs)
    workspace_directory: str = "/tmp/clearframe"

    # Region capture: drafts must exceed this size on both axes (viewport px)
    min_region_size: float = 10.0

    # Upload limit
    max_upload_mb: int = 1024

    # ============================================================
    # HARDCODED SETTINGS (not configurable via env vars)
    # ============================================================

    @property
    def default_mime_type(self) -> str:
        return "video/mp4"

    @property
    def default_extension(self) -> str:
        return "mp4"

    @property
    def default_video_name(self) -> str:
        return "video.mp4"

    @property
    def download_prefix(self) -> str:
        return "cleaned_"

    @property
    def processing_error_message(self) -> str:
        return (
            "An error occurred while processing the video. "
            "Make sure the selected areas are within the video bounds."
        )

    @property
    def engine_load_error_message(self) -> str:
        return "Failed to load FFmpeg. Please try again later."

    @property
    def probe_timeout_seconds(self) -> int:
        return 30

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
