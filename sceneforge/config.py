from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCENEFORGE_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "sceneforge"
    host: str = "0.0.0.0"
    port: int = 3001

    # Base URL used to resolve relative storage paths for the renderer
    public_base_url: str = "http://localhost:3001"
    storage_path: str = "./storage"
    default_scene_duration: float = 5.0

    render_fps: int = 30
    render_resolution: str = "1920x1080"
    render_format: str = "mp4"
    render_timeout_seconds: int = 30 * 60

    caption_fetch_timeout: float = 10.0
    media_fetch_timeout: float = 30.0
    max_words_per_caption: int = 8

    # Object storage configuration; local storage_path is used when unset
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_bucket: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str = "virtual"
    storage_folder_prefix: str = ""


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
