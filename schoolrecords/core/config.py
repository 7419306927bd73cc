from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite+aiosqlite:///./schoolrecords.db", alias="DATABASE_URL")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    import_max_rows: int = Field(500, alias="IMPORT_MAX_ROWS")
    import_roster_batch_size: int = Field(50, alias="IMPORT_ROSTER_BATCH_SIZE")
    import_default_academic_year: str = Field("2024/2025", alias="IMPORT_DEFAULT_ACADEMIC_YEAR")
    # Gender written for roster rows that leave it blank. Empty string = leave unset.
    import_default_gender: Optional[str] = Field("male", alias="IMPORT_DEFAULT_GENDER")

    @field_validator("import_default_gender", mode="before")
    @classmethod
    def _blank_gender_is_none(cls, value):
        if value is None or not str(value).strip():
            return None
        return str(value).strip().lower()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
