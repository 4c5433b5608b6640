"""Configuration for completion aggregation.

Loads from environment variables with WEBHOOK_RELAY_AGGREGATOR_ prefix.
Example: WEBHOOK_RELAY_AGGREGATOR_IDLE_DELAY_SECS=5
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigCompletionAggregator(BaseSettings):
    """Configuration for the agent completion aggregator.

    Fields:
        - idle_delay_secs: Debounce before a session is treated as finished.
          0 emits on the first idle event. With a non-zero delay, renewed
          message activity cancels the pending emission and a repeated idle
          event restarts the full delay.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_RELAY_AGGREGATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    idle_delay_secs: float = Field(
        default=0,
        ge=0,
        le=3600,  # 1h max - beyond this the notification is no longer useful
        description="Seconds a session must stay idle before completion is emitted",
    )
