from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TIERSTORE_", env_file=".env", extra="ignore")

    app_name: str = "tierstore"
    env: str = "dev"

    # Redis (job queue)
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Layer configuration file (JSON)
    layers_config: str | None = Field(default=None, validation_alias="TIERSTORE_LAYERS_CONFIG")

    # Cache layers: minimum age (seconds) before an access timestamp is rewritten
    touch_threshold: float = Field(default=300.0, validation_alias="TIERSTORE_TOUCH_THRESHOLD")

    # Fraction of a cache limit to evict below once eviction starts (0 = stop at limit)
    eviction_margin: float = Field(
        default=0.0, ge=0.0, lt=1.0, validation_alias="TIERSTORE_EVICTION_MARGIN"
    )

    # Reconciliation
    reconcile_batch_size: int = Field(
        default=200, gt=0, validation_alias="TIERSTORE_RECONCILE_BATCH_SIZE"
    )

    # Jobs
    job_max_retries: int = Field(default=10, validation_alias="TIERSTORE_JOB_MAX_RETRIES")
    job_retry_base_delay: float = Field(
        default=1.0, validation_alias="TIERSTORE_JOB_RETRY_BASE_DELAY"
    )
    job_retry_max_delay: float = Field(
        default=300.0, validation_alias="TIERSTORE_JOB_RETRY_MAX_DELAY"
    )
    job_poll_interval: float = Field(default=1.0, validation_alias="TIERSTORE_JOB_POLL_INTERVAL")
    job_claim_timeout: int = Field(default=5, validation_alias="TIERSTORE_JOB_CLAIM_TIMEOUT")

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"
    log_json: bool = Field(default=True, validation_alias="TIERSTORE_LOG_JSON")


settings = Settings()
