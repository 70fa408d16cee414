from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "invoicing"
    version: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/invoicing.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Invoice numbering and defaults
    INVOICE_NUMBER_PREFIX: str = "INV"
    INVOICE_DEFAULT_DUE_DAYS: int = 30
    INVOICE_DEFAULT_CURRENCY: str = "EUR"

    # Merge limits
    INVOICE_MERGE_MIN: int = 2
    INVOICE_MERGE_MAX: int = 10

    # Scale of stored monetary values
    MONEY_DECIMAL_PLACES: int = 4


settings = Settings()
