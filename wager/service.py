"""
Bet Ledger & Settlement Engine

Bet lifecycle: OPEN -> SETTLED (oracle callback) | REFUNDED (timeout)

- Placement validates the bet, pulls the stake, locks the worst-case
  payout and requests randomness
- The oracle callback settles the bet exactly once, paying winners and
  crediting losers' loyalty rewards
- Unsettled bets can be refunded once the timeout window has passed
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from . import payout
from .chain import InMemoryToken, InMemoryYieldFarm, RandomnessOracle, StubRandomnessOracle, TokenLedger
from .config import GameConfig
from .errors import (
    BetAlreadySettledError,
    BetNotFoundError,
    InsufficientOracleFeeError,
    InsufficientPoolFundsError,
    InvalidBetParametersError,
    InvalidConfigurationError,
    InvalidStateTransitionError,
    RefundTooEarlyError,
    RiskLimitExceededError,
)
from .guards import CallerGate, ReentrancyGuard
from .host import Host, Stateful
from .models import Bet, BetStatus, EventType, PoolStatus, WagerEvent
from .rewards import RewardLedger

logger = logging.getLogger(__name__)


class WagerService(Stateful):
    state_fields = ("locked_in_bets", "house_profit")
    log_fields = ("bets", "events")

    def __init__(
        self,
        host: Host,
        config: GameConfig,
        token: TokenLedger,
        fee_token: TokenLedger,
        oracle: RandomnessOracle,
        rewards: RewardLedger,
        owner: str,
        address: str = "wager-pool",
    ):
        self.host = host
        self.config = config
        self.token = token
        self.fee_token = fee_token
        self.oracle = oracle
        self.rewards = rewards
        self.address = address

        self.bets: list[Bet] = []
        self.requests: dict[str, int] = {}
        self.locked_in_bets = 0
        self.house_profit = 0
        self.events: list[WagerEvent] = []
        # Pre-transaction copies of bets changed by the running transaction.
        self._touched: dict[int, Bet] = {}

        self.owners = CallerGate("owner", [owner])
        self.oracles = CallerGate("oracle", [oracle.address])
        self._guard = ReentrancyGuard()
        host.register(self)

    def snapshot(self) -> dict:
        self._touched = {}
        return super().snapshot()

    def restore(self, saved: dict) -> None:
        for bet in self.bets[saved["bets"]:]:
            self.requests.pop(bet.request_id, None)
        super().restore(saved)
        for bet_id, original in self._touched.items():
            if bet_id < len(self.bets):
                self.bets[bet_id] = original
        self._touched = {}

    # ==================== PLACEMENT ====================

    def place_bet(
        self,
        participant: str,
        amount: int,
        win_selector: int,
        modulo: int,
        referrer: Optional[str] = None,
    ) -> Bet:
        with self.host.transaction():
            config = self.config
            if self.fee_token.balance_of(self.address) < config.oracle_fee:
                raise InsufficientOracleFeeError("Not enough oracle fee reserve to request randomness")
            if not 1 < modulo <= payout.MAX_MODULO:
                raise InvalidBetParametersError(f"Modulo must be between 2 and {payout.MAX_MODULO}")
            if not config.min_bet <= amount <= config.max_bet:
                raise InvalidBetParametersError(
                    f"Amount must be between {config.min_bet} and {config.max_bet}"
                )
            roll_under = payout.roll_under_for(win_selector, modulo)
            if roll_under >= modulo:
                raise InvalidBetParametersError("Bet covers every outcome and cannot lose")

            self.token.transfer_from(self.address, participant, self.address, amount)
            if referrer != participant:
                self.rewards.record_referrer(self.address, participant, referrer)

            possible_win_amount = payout.win_amount(amount, modulo, roll_under, config)
            max_profit = self.current_max_profit()
            if possible_win_amount > amount + max_profit:
                raise RiskLimitExceededError(
                    f"Possible win {possible_win_amount} exceeds stake plus max profit {max_profit}"
                )
            locked = payout.checked(self.locked_in_bets + possible_win_amount)
            if locked > self.token.balance_of(self.address):
                raise InsufficientPoolFundsError("Pool cannot cover the possible win amount")
            self.locked_in_bets = locked

            bet_id = len(self.bets)
            request_id = self._request_randomness(bet_id, participant)
            bet = Bet(
                id=bet_id,
                participant=participant,
                amount=amount,
                modulo=modulo,
                win_selector=win_selector,
                roll_under=roll_under,
                possible_win_amount=possible_win_amount,
                placement_height=self.host.height,
                request_id=request_id,
            )
            self.bets.append(bet)
            self.requests[request_id] = bet_id

            self._emit(
                EventType.BET_PLACED,
                bet_id=bet_id,
                participant=participant,
                amount=amount,
                modulo=modulo,
                roll_under=roll_under,
                possible_win_amount=possible_win_amount,
                request_id=request_id,
            )
            logger.info(
                f"Bet {bet_id} placed by {participant}: {amount} at {roll_under}/{modulo}, "
                f"locked {possible_win_amount}"
            )
            return bet.model_copy()

    def _request_randomness(self, bet_id: int, participant: str) -> str:
        seed_material = f"{self.address}:{bet_id}:{participant}:{self.host.height}"
        seed = int.from_bytes(hashlib.sha256(seed_material.encode()).digest(), "big")
        if self.config.oracle_fee:
            self.fee_token.transfer(self.address, self.oracle.address, self.config.oracle_fee)
        request_id = self.oracle.request_randomness(self.address, seed)
        if request_id in self.requests:
            raise InvalidStateTransitionError(f"Randomness request {request_id} already mapped")
        return request_id

    # ==================== SETTLEMENT ====================

    def deliver(self, caller: str, request_id: str, random_value: int) -> Bet:
        """Oracle callback: resolve the bet behind ``request_id``."""
        with self.host.transaction(), self._guard("settlement"):
            self.oracles.require(caller)
            bet = self._open_bet(self.requests.get(request_id))
            self._touch(bet)
            self.oracle.cancel(self.address, request_id)

            modulo = bet.modulo
            roll_under = payout.roll_under_for(bet.win_selector, modulo)
            outcome = random_value % modulo
            won = payout.is_winning_outcome(outcome, bet.win_selector, modulo)

            bet.status = BetStatus.SETTLED
            bet.outcome = outcome
            self.locked_in_bets -= bet.possible_win_amount

            if won:
                bet.win_amount = bet.possible_win_amount
                self.house_profit -= bet.win_amount - bet.amount
            else:
                bet.reward_amount = payout.reward_amount(bet.amount, modulo, roll_under, self.config)
                self.house_profit += bet.amount

            self._emit(
                EventType.BET_SETTLED,
                bet_id=bet.id,
                participant=bet.participant,
                outcome=outcome,
                win_amount=bet.win_amount,
                reward_amount=bet.reward_amount,
            )
            logger.info(
                f"Bet {bet.id} settled: outcome {outcome}/{modulo}, "
                f"{'won ' + str(bet.win_amount) if won else 'lost'}"
            )

            if won:
                self.token.transfer(self.address, bet.participant, bet.win_amount)
            else:
                self.rewards.add_reward(self.address, bet.participant, bet.reward_amount)
            return bet.model_copy()

    def refund(self, caller: str, bet_id: int) -> Bet:
        with self.host.transaction(), self._guard("refund"):
            bet = self._open_bet(bet_id)
            if not bet.can_refund_at(self.host.height, self.config.refund_timeout_blocks):
                logger.warning(
                    f"Refund of bet {bet_id} requested by {caller} at height {self.host.height}, "
                    f"placed at {bet.placement_height}"
                )
                raise RefundTooEarlyError(
                    f"Bet {bet_id} can be refunded from height "
                    f"{bet.placement_height + self.config.refund_timeout_blocks}"
                )

            self._touch(bet)
            self.oracle.cancel(self.address, bet.request_id)
            bet.status = BetStatus.REFUNDED
            bet.win_amount = bet.amount
            self.locked_in_bets -= bet.possible_win_amount

            self._emit(EventType.BET_REFUNDED, bet_id=bet.id, participant=bet.participant, amount=bet.amount)
            logger.info(f"Bet {bet.id} refunded to {bet.participant}: {bet.amount}")

            self.token.transfer(self.address, bet.participant, bet.amount)
            return bet.model_copy()

    def _open_bet(self, bet_id: Optional[int]) -> Bet:
        if bet_id is None or not 0 <= bet_id < len(self.bets) or self.bets[bet_id].amount == 0:
            raise BetNotFoundError(f"Bet {bet_id} not found")
        bet = self.bets[bet_id]
        if bet.is_settled:
            raise BetAlreadySettledError(f"Bet {bet_id} is already {bet.status.value.lower()}")
        return bet

    def _touch(self, bet: Bet) -> None:
        if bet.id not in self._touched:
            self._touched[bet.id] = bet.model_copy()

    # ==================== RISK & ADMIN ====================

    def current_max_profit(self) -> int:
        with self.host.reading():
            return payout.max_profit(self.token.balance_of(self.address), self.config)

    def withdraw_house_funds(self, caller: str, to: str, amount: int) -> None:
        with self.host.transaction():
            self.owners.require(caller)
            balance = self.token.balance_of(self.address)
            if amount > balance - self.locked_in_bets:
                raise InsufficientPoolFundsError(
                    f"Only {balance - self.locked_in_bets} is free of locked exposure"
                )
            self.token.transfer(self.address, to, amount)

    def update_config(self, caller: str, **changes) -> GameConfig:
        with self.host.transaction():
            self.owners.require(caller)
            unknown = set(changes) - set(GameConfig.model_fields)
            if unknown:
                raise InvalidConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
            try:
                candidate = GameConfig.model_validate({**self.config.model_dump(), **changes})
            except ValueError as e:
                raise InvalidConfigurationError(str(e)) from e
            # Applied in place so the reward ledger sees the same settings.
            for name in changes:
                object.__setattr__(self.config, name, getattr(candidate, name))
            return self.config

    # ==================== QUERIES ====================

    def get_bet(self, bet_id: int) -> Bet:
        with self.host.reading():
            if not 0 <= bet_id < len(self.bets):
                raise BetNotFoundError(f"Bet {bet_id} not found")
            return self.bets[bet_id].model_copy()

    def bet_for_request(self, request_id: str) -> Bet:
        with self.host.reading():
            bet_id = self.requests.get(request_id)
            if bet_id is None:
                raise BetNotFoundError(f"No bet for randomness request {request_id}")
            return self.get_bet(bet_id)

    def open_bets(self) -> list[Bet]:
        with self.host.reading():
            return [bet.model_copy() for bet in self.bets if not bet.is_settled]

    def pool_status(self) -> PoolStatus:
        with self.host.reading():
            return PoolStatus(
                balance=self.token.balance_of(self.address),
                locked_in_bets=self.locked_in_bets,
                max_profit=self.current_max_profit(),
                house_profit=self.house_profit,
                open_bets=sum(1 for bet in self.bets if not bet.is_settled),
            )

    def _emit(self, event_type: EventType, **metadata) -> None:
        self.events.append(WagerEvent(event_type=event_type, height=self.host.height, metadata=metadata))


@dataclass
class Deployment:
    host: Host
    config: GameConfig
    token: InMemoryToken
    fee_token: InMemoryToken
    reward_token: InMemoryToken
    oracle: StubRandomnessOracle
    farm: InMemoryYieldFarm
    rewards: RewardLedger
    service: WagerService
    owner: str


def build_deployment(config: Optional[GameConfig] = None, owner: str = "owner") -> Deployment:
    """Wire an in-memory engine, reward ledger and collaborators together."""
    config = config or GameConfig()
    host = Host()

    token = host.register(InMemoryToken("BET"))
    fee_token = host.register(InMemoryToken("FEE"))
    reward_token = host.register(InMemoryToken("REWARD"))
    stake_token = host.register(InMemoryToken("STAKE"))
    oracle = host.register(StubRandomnessOracle())
    farm = host.register(InMemoryYieldFarm(stake_token, reward_token))

    rewards = RewardLedger(host, config, reward_token, farm, owner)
    service = WagerService(host, config, token, fee_token, oracle, rewards, owner)
    rewards.approve_game(owner, service.address)
    oracle.attach(service.address, service)

    return Deployment(
        host=host,
        config=config,
        token=token,
        fee_token=fee_token,
        reward_token=reward_token,
        oracle=oracle,
        farm=farm,
        rewards=rewards,
        service=service,
        owner=owner,
    )
