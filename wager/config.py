"""Game configuration loaded from environment variables with validation."""

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TOKEN = 10 ** 18
BASIS_POINTS = 10_000


class GameConfig(BaseSettings):
    """Rates and limits read by the settlement engine and the reward ledger.

    Rates are basis points (1/10000) unless the field says percent.
    Amounts are token base units.
    """

    model_config = SettingsConfigDict(
        env_prefix="WAGER_",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    # Payout math
    house_edge_bp: int = Field(default=100, description="House edge in basis points")
    wealth_tax_bp: int = Field(default=100, description="Extra fee per whole threshold multiple staked")
    wealth_tax_threshold: int = Field(default=300 * TOKEN, description="Stake size per wealth tax step")

    # Bet limits
    min_bet: int = Field(default=TOKEN // 10, description="Minimum stake")
    max_bet: int = Field(default=10_000 * TOKEN, description="Maximum stake")
    balance_max_profit_ratio: int = Field(
        default=24,
        description="Max profit per bet is the pool balance divided by this",
    )

    # Loyalty rewards and referrals
    reward_percent: int = Field(default=50, description="Share of the fee returned to losers, percent")
    max_reward: int = Field(default=100 * TOKEN, description="Per-bet reward cap and credit ceiling")
    referral_fee_bp: int = Field(default=1000, description="Referrer share of each withdrawal")

    # Settlement
    refund_timeout_blocks: int = Field(default=250, description="Blocks before an unsettled bet can be refunded")
    oracle_fee: int = Field(default=TOKEN // 10, description="Oracle fee charged per randomness request")

    # Yield harvest
    yield_pool_id: int = Field(default=0, description="Pool id in the external yield facility")
    companion_share_percent: int = Field(default=10, description="Share of each harvest forwarded to the sink")
    companion_sink: str = Field(default="companion-sink", description="Address receiving the harvest share")

    @field_validator("house_edge_bp", "wealth_tax_bp", "referral_fee_bp")
    @classmethod
    def validate_basis_points(cls, v: int) -> int:
        if not 0 <= v < BASIS_POINTS:
            raise ValueError(f"rate must be between 0 and {BASIS_POINTS - 1} basis points")
        return v

    @field_validator("reward_percent", "companion_share_percent")
    @classmethod
    def validate_percent(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("percentage must be between 0 and 100")
        return v

    @field_validator("wealth_tax_threshold", "min_bet", "balance_max_profit_ratio", "refund_timeout_blocks")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("max_reward", "oracle_fee", "yield_pool_id")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @model_validator(mode="after")
    def validate_bet_range(self) -> "GameConfig":
        if self.min_bet > self.max_bet:
            raise ValueError("min_bet must not exceed max_bet")
        return self


class ApiSettings(BaseSettings):
    """Credentials the HTTP layer checks before acting for a caller.

    An empty oracle key disables the callback route. Participants
    authenticate with a key mapped to their address, e.g.
    ``WAGER_API_PARTICIPANT_KEYS='{"k3y": "alice"}'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="WAGER_API_",
        case_sensitive=False,
        extra="ignore",
    )

    oracle_key: str = Field(default="", description="Shared secret the oracle sends as X-Oracle-Key")
    participant_keys: dict[str, str] = Field(
        default_factory=dict,
        description="X-Api-Key value to participant address",
    )
