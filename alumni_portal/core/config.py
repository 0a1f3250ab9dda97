from pydantic_settings import BaseSettings, SettingsConfigDict

CASHFREE_BASE_URLS = {
    "sandbox": "https://sandbox.cashfree.com",
    "production": "https://api.cashfree.com",
}

class Settings(BaseSettings):
    # App Basics
    app_env: str = "dev"
    app_name: str = "Alumni Portal"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "info"
    app_base_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./dev.db"
    db_echo: bool = False

    # JWT
    jwt_secret: str = "secret_key"
    jwt_alg: str = "HS256"
    jwt_access_ttl_min: int = 60

    # Cashfree
    cashfree_env: str = "sandbox"
    cashfree_base_url: str = ""
    cashfree_app_id: str = ""
    cashfree_secret_key: str = ""
    cashfree_webhook_secret: str = ""
    cashfree_api_version: str = "2023-08-01"
    cashfree_notify_url: str = ""
    currency: str = "INR"

    # Gateway call policy (retries apply to GET verification calls only)
    gateway_timeout_seconds: float = 20.0
    gateway_retry_attempts: int = 3
    gateway_retry_base_delay: float = 0.5

    # Tell pydantic to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

    @property
    def gateway_base_url(self) -> str:
        if self.cashfree_base_url:
            return self.cashfree_base_url.rstrip("/")
        return CASHFREE_BASE_URLS.get(self.cashfree_env, CASHFREE_BASE_URLS["sandbox"])

    @property
    def webhook_secret(self) -> str:
        # Cashfree signs webhooks with the client secret unless a dedicated one is issued
        return self.cashfree_webhook_secret or self.cashfree_secret_key

settings = Settings()
