from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    metadata_path: str = Field("metadata.toml", validation_alias="METADATA_PATH")

    # Optional; unauthenticated GitHub API calls are rate limited to 60/hour.
    github_token: str = Field("", validation_alias="GITHUB_TOKEN")

    github_api_url: str = Field("https://api.github.com", validation_alias="GITHUB_API_URL")
    github_download_url: str = Field("https://github.com", validation_alias="GITHUB_DOWNLOAD_URL")
    raw_content_url: str = Field(
        "https://raw.githubusercontent.com",
        validation_alias="RAW_CONTENT_URL",
    )
    crates_api_url: str = Field("https://crates.io/api/v1", validation_alias="CRATES_API_URL")
    arch_api_url: str = Field(
        "https://archlinux.org/packages/search/json/",
        validation_alias="ARCH_API_URL",
    )
    aur_api_url: str = Field("https://aur.archlinux.org/rpc/v5", validation_alias="AUR_API_URL")

    fetch_connect_timeout_seconds: float = Field(5.0, validation_alias="FETCH_CONNECT_TIMEOUT_SECONDS")
    fetch_read_timeout_seconds: float = Field(30.0, validation_alias="FETCH_READ_TIMEOUT_SECONDS")
    # crates.io rejects requests without a User-Agent.
    fetch_user_agent: str = Field("registry-metadata-updater", validation_alias="FETCH_USER_AGENT")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
