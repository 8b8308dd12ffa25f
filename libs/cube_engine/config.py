"""Cube engine configuration settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CubeEngineSettings(BaseSettings):
    """Cube engine configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="CUBE_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Warehouse connection
    warehouse_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="SQLAlchemy async URL of the star-schema warehouse",
    )
    echo_sql: bool = Field(
        default=False, description="Echo SQL statements for debugging"
    )

    # Connection pool settings
    pool_size: int = Field(default=5, description="Warehouse connection pool size")
    max_overflow: int = Field(default=10, description="Maximum connection overflow")
    pool_timeout: int = Field(
        default=30, description="Connection pool checkout timeout in seconds"
    )
    pool_recycle: int = Field(
        default=3600, description="Connection recycle time in seconds"
    )

    # Query settings
    query_timeout: float | None = Field(
        default=30.0, description="Per-query deadline in seconds, None to disable"
    )
    current_flag_column: str = Field(
        default="is_current",
        description="Dimension column marking the current slowly-changing row",
    )
    statistics_date_column: str = Field(
        default="created_at",
        description="Fact table column used for the statistics date range",
    )
    default_top_n: int = Field(default=10, description="Default ranking size")
    default_growth_periods: int = Field(
        default=12, description="Default number of growth periods returned"
    )

    # Refresh settings
    refresh_keep_versions: int = Field(
        default=2,
        ge=2,
        description="Snapshot versions kept per cube, including the published one",
    )

    # Logging settings
    log_level: str = Field(default="INFO", description="Minimum log level")
    log_format: str = Field(default="json", description="json or console")

    def connection_params(self) -> dict:
        """Keyword parameters for the SQLAlchemy warehouse connector."""
        return {
            "url": self.warehouse_url,
            "echo": self.echo_sql,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
        }


def get_settings() -> CubeEngineSettings:
    """Get cube engine settings instance."""
    return CubeEngineSettings()
