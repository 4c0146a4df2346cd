"""
Application Configuration - Environment Variables & Settings
"""
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Application
    DEBUG: bool = Field(default=False)

    # CORS - stored as comma-separated string
    ALLOWED_ORIGINS_STR: str = Field(default="*", alias="ALLOWED_ORIGINS")

    @computed_field
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Parse comma-separated origins into list"""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS_STR.split(',') if origin.strip()]

    # Flight search - Travelpayouts / Aviasales
    AVIASALES_TOKEN: str = Field(default="")
    AVIASALES_MARKER: str = Field(default="")
    AVIASALES_HOST: str = Field(default="www.benetrip.com.br")
    AVIASALES_LOCALE: str = Field(default="pt")
    AVIASALES_BASE_URL: str = Field(default="https://api.travelpayouts.com/v1")

    # Polling protocol
    FLIGHT_SEARCH_MAX_ATTEMPTS: int = Field(default=10, ge=1)
    FLIGHT_SEARCH_POLL_DELAY: float = Field(default=2.0, ge=0)  # seconds

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    RESULTS_TIMEOUT_SECONDS: float = Field(default=45.0, gt=0)
    NETWORK_RETRY_ATTEMPTS: int = Field(default=2, ge=1)  # per single call
    NETWORK_RETRY_BACKOFF: float = Field(default=0.5, ge=0)

    # In-memory cache
    CACHE_TTL_RESULTS: int = Field(default=900)  # 15 minutes
    CACHE_TTL_CALENDAR: int = Field(default=3600)  # 1 hour
    CLICK_LINK_TTL: int = Field(default=900)  # booking links expire after 15 minutes

    # Price calendar - SearchAPI (Google Flights calendar engine)
    SEARCHAPI_KEY: str = Field(default="")
    SEARCHAPI_URL: str = Field(default="https://www.searchapi.io/api/v1/search")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
