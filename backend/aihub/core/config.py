# backend/aihub/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import structlog

# Structured logging (JSON) through the stdlib logger factory
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

class Settings(BaseSettings):
    # App
    app_name: str = "AI Hub Iran"
    app_url: str = "http://localhost:3000"
    app_version: str = "dev"
    cors_allow_origins: str = "*"
    log_level: str = "INFO"

    # Database / SQLAlchemy
    database_url: str = "sqlite+aiosqlite:///./aihub.sqlite3"
    debug_sql: bool = False
    auto_create_tables: bool = True

    # OpenRouter (OpenAI-compatible chat completions)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    llm_max_tokens: int = 2000
    llm_timeout_s: float = 60.0
    llm_max_retries: int = 2

    # OpenAI images
    openai_api_key: Optional[str] = None
    image_model: str = "dall-e-3"

    # Session tokens
    jwt_secret: str = "CHANGE_ME_SUPER_SECRET"
    jwt_alg: str = "HS256"
    access_ttl_sec: int = 30 * 24 * 60 * 60  # 30 days

    # OTP / SMS (Kavenegar)
    otp_ttl_sec: int = 120
    otp_rate_limit_per_hour: int = 5
    kavenegar_api_key: Optional[str] = None
    kavenegar_base_url: str = "https://api.kavenegar.com/v1"
    kavenegar_template: str = "verify"

    # Redis (optional, OTP throttling)
    redis_url: Optional[str] = None

    # Wallet / chat
    welcome_bonus: int = 50
    chat_input_max_chars: int = 4000

    # Media jobs: simulated processing time per kind
    media_delay_image_s: float = 0.0
    media_delay_video_s: float = 30.0
    media_delay_voice_s: float = 10.0
    media_delay_music_s: float = 20.0

    # Market data
    market_source_url: str = "https://apis.sourcearena.ir/api"
    market_timeout_s: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        return [x.strip() for x in self.cors_allow_origins.split(",") if x.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
