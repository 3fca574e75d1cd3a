"""
Central application configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    AI_PROVIDER=leonardo uvicorn app.main:app     # route to Leonardo first
    export AI_CACHE_ENABLED=false                 # staging override

A `.env` file at the project root is loaded automatically.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # AI_PROVIDER == ai_provider
        extra="ignore",         # silently drop unknown env vars
    )

    # ------------------------------------------------------------------ #
    # Environment                                                         #
    # ------------------------------------------------------------------ #
    app_env: str = Field(
        "development", description="development | production | live"
    )
    required_photos_development: int = Field(
        4, description="Selfies required before a tune may start (dev)"
    )
    required_photos_production: int = Field(
        15, description="Selfies required before a tune may start (prod)"
    )

    # ------------------------------------------------------------------ #
    # AI routing                                                          #
    # ------------------------------------------------------------------ #
    ai_provider: str = Field(
        "fal", description="Primary image-generation provider (fal | leonardo)"
    )
    ai_fallback_enabled: bool = Field(
        True, description="Retry once on the fallback provider when the primary fails"
    )
    ai_fallback_provider: Optional[str] = Field(
        None, description="Explicit fallback provider; defaults to the other known provider"
    )
    ai_cache_enabled: bool = Field(
        True, description="Serve repeat generations from the generation cache"
    )
    ai_timeout_sec: float = Field(
        120.0, description="Upper bound on a single provider generation call"
    )
    leonardo_poll_interval_sec: float = Field(
        1.0, description="Delay between Leonardo generation status polls"
    )
    leonardo_poll_max_attempts: int = Field(
        60, description="Status polls before a Leonardo generation is abandoned"
    )

    # ------------------------------------------------------------------ #
    # Provider health monitor                                             #
    # ------------------------------------------------------------------ #
    health_history_size: int = Field(
        100, description="Outcomes kept per provider (oldest evicted)"
    )
    health_success_window: int = Field(
        20, description="Recent outcomes used for the success rate"
    )
    health_degraded_success_rate: float = Field(
        0.8, description="Success rate below this → degraded"
    )
    health_offline_failures: int = Field(
        3, description="Consecutive failures → offline"
    )
    health_slow_latency_ms: float = Field(
        10_000.0, description="Latency above this → degraded"
    )
    health_check_interval_sec: int = Field(
        30, description="Period of the background health-check task"
    )
    health_monitoring_autostart: bool = Field(
        True, description="Start the background health-check task at startup"
    )
    health_offline_retry_sec: float = Field(
        60.0, description="Cooldown after which an offline provider gets one trial call"
    )

    # ------------------------------------------------------------------ #
    # Generation cache                                                    #
    # ------------------------------------------------------------------ #
    generation_cache_ttl_sec: int = Field(
        3_600, description="Generation result lifetime (1 h)"
    )
    generation_cache_prefix: str = Field(
        "generation", description="Redis key prefix for cached generations"
    )

    # ------------------------------------------------------------------ #
    # Tune creation                                                       #
    # ------------------------------------------------------------------ #
    tune_provider: str = Field(
        "fal", description="Training backend (fal | astria | replicate)"
    )
    tune_trigger_word: str = Field(
        "ohwx", description="Token the trained LoRA binds the subject to"
    )
    tune_resubmit_window_hours: int = Field(
        24, description="Production: minimum gap between two submissions"
    )
    callback_domain: str = Field(
        "https://www.cvphoto.app", description="Public origin used in provider webhook URLs"
    )

    # ------------------------------------------------------------------ #
    # Secrets & provider credentials                                      #
    # ------------------------------------------------------------------ #
    app_webhook_secret: str = Field("", description="Shared secret on training webhooks")
    polar_webhook_secret: str = Field("", description="HMAC key for Polar webhooks")
    fal_key: str = Field("", description="fal.ai API key")
    leonardo_api_key: str = Field("", description="Leonardo AI API key")
    astria_api_key: str = Field("", description="Astria API key")
    replicate_api_token: str = Field("", description="Replicate API token")
    replicate_training_model: str = Field(
        "ostris/flux-dev-lora-trainer", description="Replicate trainer model (owner/name)"
    )
    replicate_training_version: str = Field(
        "", description="Replicate trainer version id"
    )
    replicate_destination: str = Field(
        "", description="Replicate model that receives trained weights (owner/name)"
    )

    # ------------------------------------------------------------------ #
    # Payments & email                                                    #
    # ------------------------------------------------------------------ #
    polar_products: dict[str, str] = Field(
        default_factory=lambda: {
            "5b26fbdf-87ee-4002-aecf-82f6278a4831": "Basic",
            "2e38da8b-460f-4bb6-b7ab-e6e0056d99f5": "Professional",
            "4fb38fdf-ebd1-484e-9f42-07781504af78": "Executive",
        },
        description="Polar product id → plan name (JSON in env)",
    )
    default_plan: str = Field("Basic", description="Plan used for unknown product ids")
    resend_api_key: str = Field("", description="Resend API key (admin notifications)")
    admin_email: str = Field("", description="Recipient of new-order notifications")
    noreply_email: str = Field("noreply@cvphoto.app", description="Sender address")

    # ------------------------------------------------------------------ #
    # HTTP                                                                #
    # ------------------------------------------------------------------ #
    http_timeout_sec: int = Field(
        30, description="Total timeout for the shared aiohttp session"
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("production", "live")

    @property
    def required_photo_count(self) -> int:
        if self.app_env.lower() == "development":
            return self.required_photos_development
        return self.required_photos_production


# Single shared instance; import this everywhere.
settings = Settings()
