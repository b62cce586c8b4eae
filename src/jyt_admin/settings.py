"""
jyt_admin.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (JWT secret, storage keys, app secrets).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class Settings(BaseSettings):
    """
    Env-driven configuration with defaults safe for local dev.
    """

    model_config = SettingsConfigDict(env_prefix="JYT_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "jyt-admin"
    log_level: str = "INFO"
    log_json: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 9000

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "jyt-admin"
    jwt_audience: str = "jyt-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./jyt_admin.db"

    # Object storage (S3 compatible)
    s3_bucket: str = "jyt-media"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = Field(default=None, repr=False)
    s3_secret_access_key: str | None = Field(default=None, repr=False)
    s3_key_prefix: str = "uploads"
    file_public_base: str | None = None

    # Chunked uploads
    upload_part_size: int = 8 * MIB
    upload_small_file_threshold: int = 5 * MIB
    upload_max_part_concurrency: int = 4
    upload_max_file_concurrency: int = 2
    upload_part_retries: int = 3
    upload_presign_ttl_seconds: int = 3600

    # Etsy
    etsy_client_id: str = ""
    etsy_redirect_uri: str = "http://localhost:9000/admin/external-stores/etsy/callback"
    etsy_scopes: list[str] = Field(
        default_factory=lambda: ["listings_r", "listings_w", "shops_r", "transactions_r"]
    )
    etsy_auth_url: str = "https://www.etsy.com/oauth/connect"
    etsy_token_url: str = "https://api.etsy.com/v3/public/oauth/token"
    oauth_state_ttl_seconds: int = 600

    # Facebook / Instagram
    facebook_app_secret: str = Field(default="", repr=False)
    facebook_webhook_verify_token: str = Field(default="", repr=False)
    facebook_graph_url: str = "https://graph.facebook.com"
    facebook_graph_version: str = "v21.0"

    # Visual flows
    flow_env_allowlist: list[str] = Field(default_factory=lambda: ["NODE_ENV", "STORE_URL"])
    flow_scheduler_enabled: bool = True
    flow_scheduler_tick_seconds: float = 1.0
    flow_http_timeout_seconds: float = 10.0
    flow_max_depth: int = 5


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Upload tuning values are shared by the server handshake (`api.routers.uploads`) and the
# client (`media.upload_client`), so both sides agree on part size and thresholds.
