from pydantic_settings import BaseSettings
from typing import List, Tuple

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./judsync.db"

    # Security (operadores do sync manual)
    SECRET_KEY: str = "judsync-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    OPERATOR_USERNAME: str = "operador"
    OPERATOR_PASSWORD_HASH: str = ""

    # API
    API_TITLE: str = "JudSync API"
    API_VERSION: str = "1.0.0"
    CORS_ORIGINS: List[str] = ["*"]
    SEARCH_RATE_LIMIT: str = "20/minute"

    # Fontes
    DATAJUD_API_KEY: str = ""
    DATAJUD_BASE_URL: str = "https://api-publica.datajud.cnj.jus.br"
    JUSBRASIL_BASE_URL: str = "https://www.jusbrasil.com.br"
    ESAJ_URL: str = "https://esaj.tjsp.jus.br/cpopg/open.do"
    USE_REAL_ADAPTERS: bool = False
    CANONICAL_SOURCE: str = "datajud"
    DEFAULT_SEARCH_TRIBUNALS: List[str] = ["TJSP"]

    # Resiliência
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_DELAYS_SECONDS: Tuple[float, ...] = (1.0, 5.0, 30.0)
    RATE_LIMIT_COOLDOWN_SECONDS: float = 60.0
    RATE_LIMIT_MAX_WAITS: int = 3
    CALL_TIMEOUT_SECONDS: float = 30.0
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RESET_TIMEOUT_SECONDS: float = 300.0

    # Busca consolidada
    SEARCH_SOURCE_DEADLINE_SECONDS: float = 45.0
    SEARCH_MAX_PAGES: int = 3
    SEARCH_PAGE_SIZE: int = 10
    SEARCH_CACHE_TTL_SECONDS: int = 7 * 24 * 60 * 60  # 7 dias
    SEARCH_CACHE_MAX_ENTRIES: int = 500
    SEARCH_HISTORY_SIZE: int = 100

    # Sync incremental
    SYNC_MAX_PAGES: int = 2
    SYNC_PAGE_SIZE: int = 100
    SYNC_PAGE_DELAY_SECONDS: float = 0.5
    SYNC_LOOKBACK_HOURS: int = 24

    # Cota diária do armazenamento
    DAILY_WRITE_BUDGET: int = 20_000
    DAILY_READ_BUDGET: int = 50_000
    QUOTA_WARNING_THRESHOLD: float = 0.8

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
