from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "LAN Scout"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Local network
    NETWORK_INTERFACE: Optional[str] = None  # Default-route interface if None
    ARP_TABLE_PATH: str = "/proc/net/arp"
    ARP_CACHE_TTL: float = 2.0  # seconds
    OUI_DATABASE_PATH: Optional[str] = None
    CURRENT_DEVICE_TYPE: str = "desktop"

    # Discovery sweep
    MAX_SCAN_HOSTS: int = 254  # enumeration cap for subnets larger than /24
    PING_TIMEOUT: float = 1.0
    TCP_PROBE_TIMEOUT: float = 0.2
    TCP_PROBE_PORTS: list[int] = [445, 139, 22, 80, 443, 8080, 3389, 62078]
    SWEEP_CONCURRENCY: int = 50
    PROGRESS_THROTTLE: float = 0.2
    RESOLVE_HOSTNAMES: bool = True

    # Passive discovery
    MDNS_WINDOW: float = 2.0
    MDNS_RESOLVE_TIMEOUT: float = 0.5
    SSDP_WINDOW: float = 1.5
    SSDP_FETCH_DESCRIPTION: bool = True
    SSDP_DESCRIPTION_TIMEOUT: float = 2.0

    # Deep scan
    PORT_TIMEOUT: float = 0.5
    PORT_BATCH_SIZE: int = 20
    BANNER_TIMEOUT: float = 2.0
    BANNER_CONCURRENCY: int = 10
    BANNER_MAX_LENGTH: int = 200

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
