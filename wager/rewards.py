"""
Reward & Referral Ledger

- Pending loyalty rewards per participant, mirrored by a global sum
- Write-once referrer per participant, with referee counts
- Withdrawals funded by harvesting the external yield facility
- Referral fee paid to the referrer out of every withdrawal
"""

import logging
from typing import Optional

from .chain import TokenLedger, YieldFacility
from .config import BASIS_POINTS, GameConfig
from .errors import NothingToWithdrawError, RewardNotYetAvailableError
from .guards import CallerGate, ReentrancyGuard
from .host import Host, Stateful
from .models import EventType, RewardBalance, WagerEvent, WithdrawalReceipt

logger = logging.getLogger(__name__)

# Marks a participant who placed a first bet without a referrer.
NO_REFERRER = "0x0000000000000000000000000000000000000001"


class RewardLedger(Stateful):
    state_fields = ("pending_rewards", "total_pending", "referrers", "referee_counts")
    log_fields = ("events",)

    def __init__(
        self,
        host: Host,
        config: GameConfig,
        reward_token: TokenLedger,
        yield_facility: YieldFacility,
        owner: str,
        address: str = "reward-ledger",
    ):
        self.host = host
        self.config = config
        self.reward_token = reward_token
        self.yield_facility = yield_facility
        self.address = address

        self.pending_rewards: dict[str, int] = {}
        self.total_pending = 0
        self.referrers: dict[str, str] = {}
        self.referee_counts: dict[str, int] = {}
        self.events: list[WagerEvent] = []

        self.owners = CallerGate("owner", [owner])
        self.games = CallerGate("game")
        self._guard = ReentrancyGuard()
        host.register(self)

    def approve_game(self, caller: str, game: str) -> None:
        with self.host.transaction():
            self.owners.require(caller)
            self.games.allow(game)

    def record_referrer(self, caller: str, participant: str, referrer_hint: Optional[str]) -> bool:
        """Record ``participant``'s referrer on their first bet.

        Returns True only when a real referrer was recorded. Later calls,
        self-referrals and empty hints after the first bet are no-ops.
        """
        with self.host.transaction():
            self.games.require(caller)
            if participant in self.referrers:
                return False
            if referrer_hint == participant:
                return False

            if not referrer_hint:
                self.referrers[participant] = NO_REFERRER
                return False

            self.referrers[participant] = referrer_hint
            self.referee_counts[referrer_hint] = self.referee_counts.get(referrer_hint, 0) + 1
            self._emit(EventType.REFERRAL_RECORDED, participant=participant, referrer=referrer_hint)
            logger.info(f"Referral recorded: {participant} referred by {referrer_hint}")
            return True

    def add_reward(self, caller: str, participant: str, amount: int) -> int:
        with self.host.transaction():
            self.games.require(caller)
            credited = min(amount, self.config.max_reward)
            if credited <= 0:
                return 0

            self.pending_rewards[participant] = self.pending_rewards.get(participant, 0) + credited
            self.total_pending += credited
            self._emit(EventType.REWARD_CREDITED, participant=participant, amount=credited)
            return credited

    def withdraw(self, participant: str) -> WithdrawalReceipt:
        with self.host.transaction(), self._guard("withdraw"):
            pending = self.pending_rewards.get(participant, 0)
            if pending == 0:
                raise NothingToWithdrawError(f"No pending reward for {participant}")

            harvested, companion_share = self._harvest()

            referrer = self.referrer_of(participant)
            fee = pending * self.config.referral_fee_bp // BASIS_POINTS if referrer else 0
            available = self.reward_token.balance_of(self.address)
            if available < pending + fee:
                logger.warning(
                    f"Withdrawal of {pending} for {participant} deferred: only {available} available"
                )
                raise RewardNotYetAvailableError(
                    f"Reward pool holds {available}, {pending + fee} required; retry later"
                )

            self.pending_rewards[participant] = 0
            self.total_pending -= pending

            paid = min(pending, available)
            self.reward_token.transfer(self.address, participant, paid)
            self._emit(EventType.WITHDRAWAL, participant=participant, amount=paid)
            logger.info(f"Withdrawal: {participant} received {paid}")

            referral_fee = 0
            if referrer:
                referral_fee = paid * self.config.referral_fee_bp // BASIS_POINTS
                if referral_fee:
                    self.reward_token.transfer(self.address, referrer, referral_fee)
                    self._emit(
                        EventType.REFERRAL_FEE_PAID,
                        participant=participant,
                        referrer=referrer,
                        amount=referral_fee,
                    )

            return WithdrawalReceipt(
                participant=participant,
                amount=paid,
                harvested=harvested,
                companion_share=companion_share,
                referrer=referrer,
                referral_fee=referral_fee,
            )

    def referrer_of(self, participant: str) -> Optional[str]:
        with self.host.reading():
            referrer = self.referrers.get(participant)
        if referrer == NO_REFERRER:
            return None
        return referrer

    def referee_count(self, referrer: str) -> int:
        with self.host.reading():
            return self.referee_counts.get(referrer, 0)

    def get_balance(self, participant: str) -> RewardBalance:
        with self.host.reading():
            return RewardBalance(
                participant=participant,
                pending_reward=self.pending_rewards.get(participant, 0),
                referrer=self.referrer_of(participant),
                referee_count=self.referee_count(participant),
            )

    def _harvest(self) -> tuple[int, int]:
        before = self.reward_token.balance_of(self.address)
        self.yield_facility.withdraw(self.address, self.config.yield_pool_id, 0)
        harvested = self.reward_token.balance_of(self.address) - before

        companion_share = harvested * self.config.companion_share_percent // 100
        if companion_share:
            self.reward_token.transfer(self.address, self.config.companion_sink, companion_share)
        if harvested:
            self._emit(EventType.HARVEST, harvested=harvested, companion_share=companion_share)
        return harvested, companion_share

    def _emit(self, event_type: EventType, **metadata) -> None:
        self.events.append(WagerEvent(event_type=event_type, height=self.host.height, metadata=metadata))
