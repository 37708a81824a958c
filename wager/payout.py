"""
Payout Calculator

Pure functions over bet parameters and configuration.

Formulas (integer arithmetic, truncating division favours the house):
- fee            = amount * (house_edge_bp + wealth_tax_bp(amount)) / 10000
- wealth_tax_bp  = floor(amount / wealth_tax_threshold) * wealth_tax_bp
- win amount     = (amount - fee) * modulo / roll_under
- reward amount  = fee * modulo / (modulo - roll_under) * reward_percent / 100,
                   capped at max_reward
- max profit     = pool balance / balance_max_profit_ratio
"""

from .config import BASIS_POINTS, GameConfig
from .errors import ArithmeticOverflowError, InvalidBetParametersError, MaskOutOfRangeError

MAX_MODULO = 100
MAX_MASK_MODULO = 40
MAX_BET_MASK = 2 ** MAX_MASK_MODULO
UINT256_MAX = 2 ** 256 - 1


def checked(value: int) -> int:
    """Reject results outside the unsigned 256-bit range."""
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflowError(f"Arithmetic result {value} out of range")
    return value


def popcount(mask: int) -> int:
    return bin(mask).count("1")


def is_mask_form(modulo: int) -> bool:
    return modulo <= MAX_MASK_MODULO


def roll_under_for(win_selector: int, modulo: int) -> int:
    """Number of winning outcomes encoded by ``win_selector``.

    Small games use a bitmask over outcomes, larger ones a threshold
    meaning "outcome < win_selector".
    """
    if not 1 < modulo <= MAX_MODULO:
        raise InvalidBetParametersError(f"Modulo must be between 2 and {MAX_MODULO}, got {modulo}")
    if is_mask_form(modulo):
        if not 0 < win_selector < MAX_BET_MASK:
            raise MaskOutOfRangeError(f"Bet mask must be between 1 and 2^{MAX_MASK_MODULO} - 1")
        return popcount(win_selector)
    if not 0 < win_selector <= modulo:
        raise InvalidBetParametersError(f"Threshold must be between 1 and {modulo}, got {win_selector}")
    return win_selector


def is_winning_outcome(outcome: int, win_selector: int, modulo: int) -> bool:
    if is_mask_form(modulo):
        return bool((1 << outcome) & win_selector)
    return outcome < win_selector


def effective_wealth_tax_bp(amount: int, config: GameConfig) -> int:
    return (amount // config.wealth_tax_threshold) * config.wealth_tax_bp


def fee_amount(amount: int, config: GameConfig) -> int:
    rate = config.house_edge_bp + effective_wealth_tax_bp(amount, config)
    return checked(amount * rate) // BASIS_POINTS


def win_amount(amount: int, modulo: int, roll_under: int, config: GameConfig) -> int:
    if not 0 < roll_under <= modulo:
        raise InvalidBetParametersError(f"Win probability {roll_under}/{modulo} out of range")
    stake_after_fee = checked(amount - fee_amount(amount, config))
    return checked(stake_after_fee * modulo) // roll_under


def reward_amount(amount: int, modulo: int, roll_under: int, config: GameConfig) -> int:
    # A bet with roll_under == modulo cannot lose and never earns a reward.
    if not 0 < roll_under < modulo:
        raise InvalidBetParametersError(f"No loss probability for {roll_under}/{modulo}")
    fee = fee_amount(amount, config)
    reward = checked(checked(fee * modulo) // (modulo - roll_under) * config.reward_percent) // 100
    return min(reward, config.max_reward)


def max_profit(pool_balance: int, config: GameConfig) -> int:
    return pool_balance // config.balance_max_profit_ratio
