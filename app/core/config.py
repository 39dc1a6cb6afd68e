from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "sistema-solicitudes-transporte"
    LOG_LEVEL: str = "INFO"

    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "solicitudes_transporte"

    SECRET_KEY: str = "cambiar-esta-clave-en-produccion"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 8

    CORS_ORIGINS: List[str] = ["*"]

    # Numeración HE por empresa
    HE_PREFIX_DEFAULT: str = "HE-"
    HE_LENGTH: int = 6

    # Ocupación mínima asumida para la solicitud nueva al verificar conflictos
    MIN_OCCUPANCY_MINUTES: int = 60

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
