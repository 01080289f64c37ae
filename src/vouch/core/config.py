"""Core configuration - centralized config for the vouch package.

All environment-based configuration should flow through this module.

Usage:
    from vouch.core.config import get_config
    config = get_config()

    operator = config.operator_id
    rate = config.platform_fee_rate
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    """Core configuration settings for Vouch.

    Settings can be configured via VOUCH_ environment variables or a
    .env file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # IDENTITY SETTINGS
    # ==========================================================================

    operator_id: str = Field(
        default="operator",
        description="Identity allowed to sponsor disbursements and withdraw platform fees",
        validation_alias="VOUCH_OPERATOR_ID",
    )
    ledger_id: str = Field(
        default="ledger",
        description="Identity the ledger uses when sponsoring on a user's behalf",
        validation_alias="VOUCH_LEDGER_ID",
    )

    # ==========================================================================
    # FEE POOL SETTINGS
    # ==========================================================================

    platform_fee_rate: Decimal = Field(
        default=Decimal("0.02"),
        description="Share of every deposit reserved for the platform",
        validation_alias="VOUCH_PLATFORM_FEE_RATE",
    )

    # ==========================================================================
    # REWARD SETTINGS
    # ==========================================================================

    post_creation_reward: Decimal = Field(
        default=Decimal("10"),
        description="Tokens credited to an author for creating a post",
        validation_alias="VOUCH_POST_CREATION_REWARD",
    )
    verifier_reward: Decimal = Field(
        default=Decimal("5"),
        description="Tokens credited to an identity for verifying a post",
        validation_alias="VOUCH_VERIFIER_REWARD",
    )
    verified_author_reward: Decimal = Field(
        default=Decimal("2"),
        description="Tokens credited to an author when their post is verified",
        validation_alias="VOUCH_VERIFIED_AUTHOR_REWARD",
    )

    # ==========================================================================
    # PERSISTENCE SETTINGS
    # ==========================================================================

    state_path: str | None = Field(
        default=None,
        description="JSON snapshot file for ledger and pool state (optional)",
        validation_alias="VOUCH_STATE_PATH",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="VOUCH_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="VOUCH_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="VOUCH_LOG_FILE",
    )

    @field_validator("platform_fee_rate")
    @classmethod
    def _check_fee_rate(cls, value: Decimal) -> Decimal:
        if value < 0 or value >= 1:
            raise ValueError(f"platform_fee_rate must be in [0, 1), got {value}")
        return value

    @field_validator("post_creation_reward", "verifier_reward", "verified_author_reward")
    @classmethod
    def _check_reward(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError(f"reward amounts must not be negative, got {value}")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def reward_constants(self):
        """Reward amounts as a RewardConstants value."""
        from .rewards import RewardConstants

        return RewardConstants(
            post_creation_reward=self.post_creation_reward,
            verifier_reward=self.verifier_reward,
            verified_author_reward=self.verified_author_reward,
        )


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
