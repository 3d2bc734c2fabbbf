"""Configuration models for the card sync service."""

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class TcgcsvConfig(BaseModel):
    """Configuration for the primary catalog API."""

    base_url: HttpUrl = Field(
        default="https://tcgcsv.com/tcgplayer", description="Catalog API base URL"
    )
    category_id: str = Field(default="24", description="Catalog category (24 = Final Fantasy TCG)")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    user_agent: str = Field(default="FFTCG-Sync-Service/1.0", description="User-Agent header")


class OfficialApiConfig(BaseModel):
    """Configuration for the official card browser API."""

    base_url: HttpUrl = Field(
        default="https://fftcg.square-enix-games.com/en",
        description="Official card browser base URL",
    )
    timeout: float = Field(default=60.0, gt=0, description="Request timeout in seconds")
    language: str = Field(default="en", description="Card text language")


class SyncConfig(BaseModel):
    """Configuration for the checkpointed sync controller."""

    cards_per_batch: int = Field(default=50, ge=1, le=500, description="Records per sub-batch")
    delay_between_batches: float = Field(
        default=2.0, ge=0.0, description="Pause between sub-batches in seconds"
    )
    checkpoint_interval: int = Field(
        default=100, ge=1, description="Persist progress every N processed items"
    )
    max_execution_seconds: float = Field(
        default=540.0, gt=0, description="Hard execution budget of one invocation"
    )
    safety_margin_seconds: float = Field(
        default=60.0, ge=0, description="Pause this long before the budget runs out"
    )
    max_batch_attempts: int = Field(
        default=3, ge=1, description="Attempts per sub-batch before the group fails"
    )
    batch_backoff_max_seconds: float = Field(
        default=10.0, ge=0, description="Upper bound for sub-batch retry waits"
    )
    enrich_with_official_data: bool = Field(
        default=True, description="Cross-reference records against the official source"
    )
    store_official_cards: bool = Field(
        default=True, description="Persist changed official cards into their own collection"
    )
    record_price_history: bool = Field(
        default=True, description="Snapshot changed prices into the daily price history"
    )


class RateLimitConfig(BaseModel):
    """Configuration for the outbound rate limiter."""

    max_rate: float = Field(default=500, gt=0, description="Sustained operations per second")
    interval_seconds: float = Field(default=1.0, gt=0, description="Length of one interval")
    max_concurrent_batches: int = Field(
        default=3, ge=1, description="Interval-batches allowed in flight"
    )


class RetryConfig(BaseModel):
    """Configuration for retries and the circuit breaker."""

    max_retries: int = Field(default=3, ge=0, description="Retries for transient errors")
    initial_delay: float = Field(default=1.0, ge=0, description="First backoff delay in seconds")
    max_delay: float = Field(default=10.0, ge=0, description="Backoff ceiling in seconds")
    backoff_factor: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    quota_max_retries: int = Field(default=3, ge=0, description="Retries for quota errors")
    quota_initial_delay: float = Field(default=2.0, ge=0, description="First quota backoff delay")
    quota_max_delay: float = Field(default=10.0, ge=0, description="Quota backoff ceiling")
    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures that open the circuit"
    )
    reset_timeout: float = Field(
        default=30.0, ge=0, description="Seconds the circuit stays open"
    )
    stats_interval: float = Field(default=60.0, gt=0, description="Seconds between stats events")


class CacheConfig(BaseModel):
    """Configuration for the in-process fingerprint cache."""

    max_size: int = Field(default=500, ge=1, description="Maximum cached fingerprints")
    ttl_seconds: float = Field(default=3600.0, gt=0, description="Entry time-to-live")


class StoreConfig(BaseModel):
    """Configuration for the document and blob stores."""

    type: str = Field(default="memory", description="Document store implementation")
    blob_type: str = Field(default="memory", description="Blob store implementation")
    max_batch_operations: int = Field(
        default=500, ge=1, le=500, description="Operations per atomic batch"
    )
    lookup_batch_size: int = Field(
        default=10, ge=1, description="Ids per fingerprint read sub-batch"
    )
    public_base_url: str = Field(
        default="https://storage.googleapis.com/fftcg-sync-service.firebasestorage.app",
        description="Public URL prefix for stored images",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the FFTCG_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="FFTCG_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    tcgcsv: TcgcsvConfig = Field(default_factory=TcgcsvConfig)
    official: OfficialApiConfig = Field(default_factory=OfficialApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
