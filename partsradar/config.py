# partsradar/config.py
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings


class PartType(str, Enum):
    CPU = "CPU"
    GPU = "GPU"
    MOTHERBOARD = "MOTHERBOARD"
    RAM = "RAM"
    STORAGE_SSD = "STORAGE_SSD"
    STORAGE_HDD = "STORAGE_HDD"
    PSU = "PSU"
    CASE = "CASE"
    COOLING = "COOLING"
    MONITOR = "MONITOR"
    KEYBOARD = "KEYBOARD"
    MOUSE = "MOUSE"
    LAPTOP = "LAPTOP"
    MODEM = "MODEM"
    CONSOLE = "CONSOLE"
    NETWORKING = "NETWORKING"
    SCANNER = "SCANNER"
    TABLET = "TABLET"
    WIFI = "WIFI"
    AUDIO_CARD = "AUDIO_CARD"
    OTHER = "OTHER"

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES[self]


DISPLAY_NAMES = {
    PartType.CPU: "Procesory",
    PartType.GPU: "Grafické karty",
    PartType.MOTHERBOARD: "Základní desky",
    PartType.RAM: "Paměti RAM",
    PartType.STORAGE_SSD: "SSD disky",
    PartType.STORAGE_HDD: "HDD disky",
    PartType.PSU: "Zdroje",
    PartType.CASE: "Skříně",
    PartType.COOLING: "Chlazení",
    PartType.MONITOR: "Monitory",
    PartType.KEYBOARD: "Klávesnice",
    PartType.MOUSE: "Myši",
    PartType.LAPTOP: "Notebooky",
    PartType.MODEM: "Modemy",
    PartType.CONSOLE: "Konzole",
    PartType.NETWORKING: "Síťové prvky",
    PartType.SCANNER: "Scanery",
    PartType.TABLET: "Tablety",
    PartType.WIFI: "WiFi",
    PartType.AUDIO_CARD: "Zvukové karty",
    PartType.OTHER: "Ostatní",
}

# Bazos category path segments. Shared by the periodic crawl and manual triggers.
CATEGORY_PATHS: dict[PartType, str] = {
    PartType.GPU: "graficka",
    PartType.STORAGE_HDD: "hdd",  # hdd + ssd
    PartType.CONSOLE: "playstation",
    PartType.COOLING: "chladic",
    PartType.KEYBOARD: "klavesnice",
    PartType.MONITOR: "monitor",
    PartType.MODEM: "modem",
    PartType.LAPTOP: "notebook",
    PartType.RAM: "pamet",
    PartType.OTHER: "pc",  # pre-builts
    PartType.CPU: "procesor",
    PartType.NETWORKING: "sit",
    PartType.SCANNER: "scaner",
    PartType.CASE: "case",  # cases + power supplies
    PartType.TABLET: "tablet",
    PartType.WIFI: "wifi",
    PartType.MOTHERBOARD: "motherboard",
    PartType.AUDIO_CARD: "sound",
}


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./partsradar.db"

    LOG_LEVEL: str = "INFO"

    SCRAPING_ENABLED: bool = True
    CRAWL_INTERVAL_HOURS: int = 3
    FIRST_RUN_DELAY_SECONDS: int = 30
    MAX_CONCURRENT_CATEGORIES: int = 5
    STAGGER_START: bool = True
    STAGGER_SECONDS: int = 30
    DUPLICATE_STOP_THRESHOLD: float = Field(0.8, ge=0.0, le=1.0)
    PAGE_HARD_CAP: int = 500
    LISTING_DELAY_MS: int = 200
    PAGE_DELAY_MS: int = 1500

    CLASSIFY_BATCH_SIZE: int = 50
    BOOTSTRAP_YEARS: int = 15
    BOOTSTRAP_MIN_YEARS: int = 3

    PROXY_ENABLED: bool = False
    PROXY_HOST: str = "127.0.0.1"
    PROXY_PORT: int = 9050
    PROXY_CONTROL_PORT: int = 9051
    PROXY_CONTROL_PASSWORD: str = ""
    PROXY_ROTATION_INTERVAL: int = 10

    BAZOS_BASE_DELAY_MS: int = 1000
    BAZOS_MAX_DELAY_MS: int = 8000
    BAZOS_MAX_RETRIES: int = 2
    BAZOS_TIMEOUT_MS: int = 10000

    TECHPOWERUP_BASE_DELAY_MS: int = 2000
    TECHPOWERUP_MAX_DELAY_MS: int = 8000
    TECHPOWERUP_MAX_RETRIES: int = 3
    TECHPOWERUP_TIMEOUT_MS: int = 15000
    TECHPOWERUP_USE_PROXY: bool = True

    WEB_HOST: str = "0.0.0.0"
    WEB_PORT: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
