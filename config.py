"""Configuration settings for the shift SMS assistant"""
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings using Pydantic for validation and environment variable loading"""

    # Database configuration
    DB_NAME: str = "shiftline"
    DB_USER: str = "postgres"
    DB_PASS: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    STORAGE_BACKEND: str = "memory"  # "memory" or "postgres"

    # SMS configuration (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_VALIDATE_SIGNATURE: bool = False
    DEFAULT_COUNTRY_CODE: str = "49"
    MAX_SMS_LENGTH: int = 1600
    SMS_MAX_RETRIES: int = 3
    SMS_RETRY_BASE_DELAY: float = 1.0

    # Registration
    REGISTRATION_CODES: str = "emsland100"

    # Conversation lifecycle
    CONVERSATION_EXPIRY_HOURS: int = 24
    REGISTRATION_EXPIRY_HOURS: int = 2
    TIME_REQUEST_CUTOFF_HOUR: int = 18

    # People and places named in replies
    COORDINATOR_NAME: str = "Herrn Schepergerdes"
    ONSITE_CONTACT_NAME: str = "Frau Müller"
    DEFAULT_MEETING_POINT: str = "die Emsland Arena"

    # Application settings
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def registration_code_list(self) -> List[str]:
        """Seed registration codes, lower-cased"""
        return [c.strip().lower() for c in self.REGISTRATION_CODES.split(",") if c.strip()]

    @property
    def use_postgres(self) -> bool:
        return self.STORAGE_BACKEND.lower() == "postgres"

    class Config:
        # Load from .env file
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
