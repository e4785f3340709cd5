"""Application settings and shared constants."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "Gestión de Obras"
    database_url: str = Field("sqlite:///./gestion_obras.db")
    log_level: str = Field("INFO")
    log_dir: Optional[str] = Field(None)
    # Pesos per UR (Unidad Reajustable)
    cotizacion_ur: float = Field(1850.0)
    default_page_size: int = Field(20)
    max_page_size: int = Field(100)
    ot_code_prefix: str = Field("OT")
    ot_code_min_digits: int = Field(3)

    @field_validator("cotizacion_ur")
    @classmethod
    def validate_cotizacion(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cotizacion_ur must be positive")
        return v

    @field_validator("default_page_size", "max_page_size", "ot_code_min_digits")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
