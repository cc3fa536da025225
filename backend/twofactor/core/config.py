from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "twofactor-service"
    app_env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./twofactor.sqlite"

    # JWT
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60

    # TOTP
    totp_issuer: str = "Two Factor"
    totp_digits: int = 6
    totp_period: int = 30
    totp_tolerance: int = 2

    # Backup codes
    backup_code_count: int = 8
    backup_code_length: int = 6

    # Enrollment policy
    allow_restaging: bool = True
    reject_replayed_codes: bool = True

    # base64-encoded 32-byte key; empty stores secrets as plain base32
    secret_encryption_key: str = ""

    # Brute-force throttling on code checks
    verify_max_attempts: int = 5
    verify_base_delay: float = 2.0
    verify_max_delay: float = 300.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
