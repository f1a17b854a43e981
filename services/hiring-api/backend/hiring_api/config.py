import os

class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./hiring.db")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    INVITATION_EXPIRY_DAYS: int = int(os.getenv("INVITATION_EXPIRY_DAYS", "7"))
    INITIAL_CREDIT_GRANT: int = int(os.getenv("INITIAL_CREDIT_GRANT", "3"))
    PRICE_PER_CREDIT_EUR: int = int(os.getenv("PRICE_PER_CREDIT_EUR", "27"))
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    EMAIL_QUEUE: str = os.getenv("EMAIL_QUEUE", "email")
    CORS_ALLOWED_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://localhost",
        ).split(",")
        if origin.strip()
    ]
    API_BASE_PATH: str = os.getenv("API_BASE_PATH", "")
    API_ROOT_PATH: str = os.getenv("API_ROOT_PATH", "")
    API_PREFIX: str = os.getenv("API_PREFIX", API_BASE_PATH)

settings = Settings()
