"""Gateway settings and configuration.

All options are read from environment variables (or a `.env` file) once at
process startup. The resulting `Settings` instance is passed explicitly to
every component that needs it; nothing reads the environment after startup.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables.

    Backend base URLs may be left empty. The gateway still starts, but every
    relay call then fails fast with a configuration error.
    """

    # Application metadata
    app_name: str = Field(default="bulb.social gateway", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Backend services, e.g. http://kubo:5001 and http://orbitdb:3000
    ipfs_api_url: str = Field(default="", alias="IPFS_API_URL")
    orbitdb_api_url: str = Field(default="", alias="ORBITDB_API_URL")
    backend_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        alias="BACKEND_TIMEOUT_SECONDS",
    )

    # Listener
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, ge=0, le=65535, alias="PORT")
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        alias="REQUEST_TIMEOUT_SECONDS",
    )
    max_header_bytes: int = Field(default=1 << 20, gt=0, alias="MAX_HEADER_BYTES")
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        alias="SHUTDOWN_GRACE_SECONDS",
    )

    # Staging area for uploads in transit to IPFS
    staging_prefix: str = Field(default="bulb.social-tmp", alias="STAGING_PREFIX")
    staging_dir: str | None = Field(default=None, alias="STAGING_DIR")

    # CORS configuration
    cors_origins: list[str] = Field(default=[], alias="CORS_ORIGINS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Content-Type"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def public_config(self) -> dict[str, object]:
        """Return a sanitized snapshot suitable for the system endpoint.

        Returns:
            Dictionary with app metadata, backend endpoints and listener limits
        """
        return {
            "app": {
                "name": self.app_name,
                "version": self.app_version,
                "debug": self.debug,
            },
            "backends": {
                "ipfs_api_url": self.ipfs_api_url,
                "orbitdb_api_url": self.orbitdb_api_url,
                "timeout_seconds": self.backend_timeout_seconds,
            },
            "listener": {
                "port": self.port,
                "request_timeout_seconds": self.request_timeout_seconds,
                "max_header_bytes": self.max_header_bytes,
                "shutdown_grace_seconds": self.shutdown_grace_seconds,
            },
        }
