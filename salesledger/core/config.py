from pydantic_settings import BaseSettings, SettingsConfigDict
from decimal import Decimal
from pydantic import field_validator


class Settings(BaseSettings):
    # Impuestos
    ITBIS_RATE: Decimal = Decimal('0.18')
    CURRENCY: str = 'DOP'

    # Tolerancia para la división contado/crédito de ventas mixtas
    MIXED_SPLIT_TOLERANCE: Decimal = Decimal('0.01')

    # Numeración de notas de crédito
    CREDIT_NOTE_PREFIX: str = 'NC-'
    CREDIT_NOTE_NUMBER_DIGITS: int = 8

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = ""

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "INFO" if self.ENVIRONMENT == "production" else "DEBUG"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("ITBIS_RATE")
    @classmethod
    def validate_rate(cls, v):
        if v < 0 or v > 1:
            raise ValueError('La tasa debe estar entre 0 y 1')
        return v


settings = Settings()
