from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "WirePact PKI"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8080

    # Storage: local file pair or Kubernetes secret
    PKI_LOCAL_MODE: bool = False
    PKI_LOCAL_PATH: str = "./ca"
    PKI_SECRET_NAME: str = "wirepact-pki-ca"

    # Namespace override (otherwise resolved from the cluster context)
    PKI_NAMESPACE: Optional[str] = None

    # Pre-shared key expected verbatim in the Authorization header (optional)
    PKI_API_KEY: Optional[str] = None


settings = Settings()
