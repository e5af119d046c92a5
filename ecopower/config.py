from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    MONGO_URL: str = Field(default="mongodb://localhost:27017")
    MONGO_DB: str = Field(default="ecopower")
    JWT_SECRET: str = Field(...)
    ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7)

    # SMTP optionnel : sans configuration les emails passent en mode simulation
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_FROM: Optional[str] = None
    MAIL_PORT: int = Field(default=587)
    MAIL_SERVER: Optional[str] = None

    GOOGLE_CLIENT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS: Optional[str] = None  # chemin du compte de service
    WHATSAPP_API_URL: Optional[str] = None
    WHATSAPP_API_TOKEN: Optional[str] = None

    # Coordonnées publiques, utilisées si la base n'en définit pas
    CONTACT_EMAIL: Optional[str] = None
    CONTACT_PHONE: Optional[str] = None
    APP_WEBSITE: Optional[str] = None
    APP_DESCRIPTION: Optional[str] = None

    # Règles métier
    DEFAULT_TARIFF_KWH: float = Field(default=0.1740)
    INVOICE_DUE_DAYS: int = Field(default=30)
    MAX_READINGS_PER_MONTH: int = Field(default=2)

    ENVIRONMENT: str = Field(default="development")

    class Config:
        env_file = ".env"

    @property
    def mail_configured(self) -> bool:
        return bool(self.MAIL_SERVER and self.MAIL_USERNAME and self.MAIL_PASSWORD)

settings = Settings()
