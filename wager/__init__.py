"""
Provably-Fair Wager Settlement Engine

This module provides:
- Bet placement with exposure locking against a shared pool
- Oracle-driven settlement and timeout refunds, each exactly once
- Dynamic max-profit risk limit and house edge / wealth tax math
- Loyalty rewards for losing bets and referral fees on withdrawal
"""

from .config import ApiSettings, GameConfig
from .models import (
    BetStatus,
    EventType,
    Bet,
    WagerEvent,
    RewardBalance,
    WithdrawalReceipt,
    PoolStatus,
)
from .rewards import RewardLedger
from .service import Deployment, WagerService, build_deployment

__all__ = [
    "ApiSettings",
    "GameConfig",
    "BetStatus",
    "EventType",
    "Bet",
    "WagerEvent",
    "RewardBalance",
    "WithdrawalReceipt",
    "PoolStatus",
    "RewardLedger",
    "Deployment",
    "WagerService",
    "build_deployment",
]
