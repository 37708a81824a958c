"""
External Collaborators

Interfaces the settlement engine and reward ledger depend on, plus the
in-memory implementations used by the default deployment and the tests:
- Fungible token ledger (balance, transfer, transfer-from with allowance)
- Randomness oracle (request now, deliver later through a callback)
- Yield facility (deposit / withdraw, withdraw of zero harvests)
"""

import hashlib
import logging
from typing import Callable, Optional, Protocol

from .errors import TransferRejectedError, UnauthorizedCallerError
from .host import Stateful

logger = logging.getLogger(__name__)

ReceiveHook = Callable[[str, int], None]


class TokenLedger(Protocol):
    symbol: str

    def balance_of(self, owner: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool: ...


class RandomnessConsumer(Protocol):
    def deliver(self, caller: str, request_id: str, random_value: int) -> object: ...


class RandomnessOracle(Protocol):
    address: str

    def request_randomness(self, requester: str, seed: int) -> str: ...

    def cancel(self, requester: str, request_id: str) -> None: ...


class YieldFacility(Protocol):
    address: str

    def deposit(self, caller: str, pool_id: int, amount: int, referrer: Optional[str] = None) -> None: ...

    def withdraw(self, caller: str, pool_id: int, amount: int) -> None: ...


class InMemoryToken(Stateful):
    state_fields = ("balances", "allowances", "total_supply")

    def __init__(self, symbol: str):
        self.symbol = symbol
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.total_supply = 0
        self._receive_hooks: dict[str, ReceiveHook] = {}

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def mint(self, to: str, amount: int) -> None:
        self._require_amount(amount)
        self.balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._require_amount(amount)
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise TransferRejectedError(
                f"{self.symbol}: allowance {allowed} of {spender} over {owner} is below {amount}"
            )
        self._move(owner, to, amount)
        self.allowances[(owner, spender)] = allowed - amount
        return True

    def on_receive(self, address: str, hook: Optional[ReceiveHook]) -> None:
        """Register a hook run whenever ``address`` receives tokens."""
        if hook is None:
            self._receive_hooks.pop(address, None)
        else:
            self._receive_hooks[address] = hook

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._require_amount(amount)
        balance = self.balance_of(sender)
        if balance < amount:
            raise TransferRejectedError(
                f"{self.symbol}: balance {balance} of {sender} is below {amount}"
            )
        self.balances[sender] = balance - amount
        self.balances[to] = self.balance_of(to) + amount

        hook = self._receive_hooks.get(to)
        if hook:
            hook(sender, amount)

    def _require_amount(self, amount: int) -> None:
        if amount < 0:
            raise TransferRejectedError(f"{self.symbol}: negative amount {amount}")


class StubRandomnessOracle(Stateful):
    """Hands out request ids and fulfils them on demand.

    Fulfilment calls back into the consumer registered for the requester,
    passing the oracle's own address as the caller. A requester cancels a
    request once it has consumed it, by callback or by refund.
    """

    state_fields = ("pending", "nonce")

    def __init__(self, address: str = "randomness-oracle"):
        self.address = address
        self.pending: dict[str, str] = {}
        self.nonce = 0
        self._consumers: dict[str, RandomnessConsumer] = {}

    def attach(self, requester: str, consumer: RandomnessConsumer) -> None:
        self._consumers[requester] = consumer

    def request_randomness(self, requester: str, seed: int) -> str:
        self.nonce += 1
        request_id = hashlib.sha256(f"{requester}:{seed}:{self.nonce}".encode()).hexdigest()
        self.pending[request_id] = requester
        return request_id

    def fulfill(self, request_id: str, random_value: int) -> object:
        requester = self.pending.get(request_id)
        if requester is None:
            raise LookupError(f"No pending randomness request {request_id}")
        result = self._consumers[requester].deliver(self.address, request_id, random_value)
        self.pending.pop(request_id, None)
        return result

    def cancel(self, requester: str, request_id: str) -> None:
        owner = self.pending.get(request_id)
        if owner is None:
            return
        if owner != requester:
            raise UnauthorizedCallerError(f"{requester} did not request {request_id}")
        del self.pending[request_id]


class InMemoryYieldFarm(Stateful):
    """Staking pool that accrues reward tokens to its depositors."""

    state_fields = ("principal", "accrued")

    def __init__(self, stake_token: InMemoryToken, reward_token: InMemoryToken, address: str = "yield-farm"):
        self.address = address
        self.stake_token = stake_token
        self.reward_token = reward_token
        self.principal: dict[tuple[int, str], int] = {}
        self.accrued: dict[tuple[int, str], int] = {}

    def accrue(self, pool_id: int, account: str, amount: int) -> None:
        """Emit ``amount`` reward tokens to ``account``'s position."""
        self.reward_token.mint(self.address, amount)
        key = (pool_id, account)
        self.accrued[key] = self.accrued.get(key, 0) + amount

    def pending_yield(self, pool_id: int, account: str) -> int:
        return self.accrued.get((pool_id, account), 0)

    def deposit(self, caller: str, pool_id: int, amount: int, referrer: Optional[str] = None) -> None:
        self._harvest(caller, pool_id)
        if amount:
            self.stake_token.transfer_from(self.address, caller, self.address, amount)
            key = (pool_id, caller)
            self.principal[key] = self.principal.get(key, 0) + amount

    def withdraw(self, caller: str, pool_id: int, amount: int) -> None:
        key = (pool_id, caller)
        staked = self.principal.get(key, 0)
        if amount > staked:
            raise TransferRejectedError(f"Cannot withdraw {amount}, only {staked} staked")
        self._harvest(caller, pool_id)
        if amount:
            self.principal[key] = staked - amount
            self.stake_token.transfer(self.address, caller, amount)

    def _harvest(self, caller: str, pool_id: int) -> int:
        harvested = self.accrued.pop((pool_id, caller), 0)
        if harvested:
            self.reward_token.transfer(self.address, caller, harvested)
            logger.debug(f"Harvested {harvested} {self.reward_token.symbol} for {caller}")
        return harvested
