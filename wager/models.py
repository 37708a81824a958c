from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, ConfigDict


class BetStatus(str, Enum):
    OPEN = "OPEN"
    SETTLED = "SETTLED"
    REFUNDED = "REFUNDED"


class EventType(str, Enum):
    BET_PLACED = "BET_PLACED"
    BET_SETTLED = "BET_SETTLED"
    BET_REFUNDED = "BET_REFUNDED"
    REWARD_CREDITED = "REWARD_CREDITED"
    HARVEST = "HARVEST"
    WITHDRAWAL = "WITHDRAWAL"
    REFERRAL_RECORDED = "REFERRAL_RECORDED"
    REFERRAL_FEE_PAID = "REFERRAL_FEE_PAID"


class Bet(BaseModel):
    id: int
    participant: str
    amount: int
    modulo: int
    win_selector: int
    roll_under: int
    possible_win_amount: int
    placement_height: int
    request_id: str
    status: BetStatus = BetStatus.OPEN
    outcome: Optional[int] = None
    win_amount: int = 0
    reward_amount: int = 0

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_settled(self) -> bool:
        return self.status != BetStatus.OPEN

    def can_refund_at(self, height: int, timeout_blocks: int) -> bool:
        return height >= self.placement_height + timeout_blocks


class WagerEvent(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    height: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict = Field(default_factory=dict)


class PlaceBetRequest(BaseModel):
    amount: int = Field(..., gt=0)
    win_selector: int = Field(..., gt=0, description="Bitmask for modulo <= 40, threshold above")
    modulo: int = Field(..., gt=1, le=100)
    referrer: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 10 * 10 ** 18,
            "win_selector": 2,
            "modulo": 2,
            "referrer": "bob"
        }
    })


class OracleCallbackRequest(BaseModel):
    request_id: str
    random_value: int = Field(..., ge=0, lt=2 ** 256)


class RewardBalance(BaseModel):
    participant: str
    pending_reward: int
    referrer: Optional[str] = None
    referee_count: int = 0


class WithdrawalReceipt(BaseModel):
    participant: str
    amount: int
    harvested: int
    companion_share: int
    referrer: Optional[str] = None
    referral_fee: int = 0


class PoolStatus(BaseModel):
    balance: int
    locked_in_bets: int
    max_profit: int
    house_profit: int
    open_bets: int
