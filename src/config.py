from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database (local booking store)
    DATABASE_URL: str = "sqlite:///./bookings.db"

    # External travel API; when unset the local SQL store is used
    TRAVEL_API_BASE_URL: Optional[str] = None
    TRAVEL_API_TIMEOUT: float = 10.0

    # Booking policy
    CANCELLATION_WINDOW_DAYS: int = 3
    STATUS_COUNTS_TTL_SECONDS: int = 60

    # Ticket document defaults
    TICKET_BRAND: str = "TRAVEL.LK"
    SUPPORT_EMAIL: str = "info@tickets.lk"
    SUPPORT_PHONE: str = "+94 11 234 5678"
    CURRENCY_LABEL: str = "Rs."

    # Application
    PROJECT_NAME: str = "Activity Booking Engine"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def uses_remote_store(self) -> bool:
        return bool(self.TRAVEL_API_BASE_URL)

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
