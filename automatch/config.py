"""Configuration management using Pydantic BaseSettings."""
from pathlib import Path
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Remote AutoMatch service
    automatch_api_base: str = Field(default="http://localhost:3001/api", alias="AUTOMATCH_API_BASE")
    automatch_api_token: str = Field(default="", alias="AUTOMATCH_API_TOKEN")
    request_timeout: int = Field(default=30, alias="AUTOMATCH_REQUEST_TIMEOUT")

    # Data paths
    data_dir: Path = Field(default_factory=lambda: Path("./data"))
    out_dir: Path = Field(default_factory=lambda: Path("./out"))
    log_dir: Path = Field(default_factory=lambda: Path("./logs"))

    # Database
    db_path: Path = Field(default_factory=lambda: Path("./data/automatch.duckdb"), alias="AUTOMATCH_DB_PATH")
    deal_table: str = Field(default="deals", alias="AUTOMATCH_DEAL_TABLE")
    cde_table: str = Field(default="cdes", alias="AUTOMATCH_CDE_TABLE")

    # QEI allocatee file (CDFI Fund release)
    qei_path: Path = Field(
        default_factory=lambda: Path("./data/NMTC_Allocatee_Data.csv"),
        alias="QEI_PATH"
    )

    # Versioned reference tables override (JSON); built-in tables when unset
    reference_tables_path: Optional[Path] = Field(default=None, alias="AUTOMATCH_REFERENCE_TABLES")

    # Scan defaults
    default_min_score: int = Field(default=70, alias="AUTOMATCH_MIN_SCORE")
    max_results: int = Field(default=500, alias="AUTOMATCH_MAX_RESULTS")
    reasons_limit: int = Field(default=4, alias="AUTOMATCH_REASONS_LIMIT")
    deal_scan_statuses: List[str] = Field(
        default_factory=lambda: ["available", "seeking_capital"],
        alias="AUTOMATCH_DEAL_STATUSES"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    @property
    def duckdb_path(self) -> str:
        """Return DuckDB path as string."""
        return str(self.db_path)


# Global settings instance
settings = Settings()
