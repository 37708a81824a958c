import pytest

from wager.config import GameConfig, TOKEN
from wager.service import Deployment, build_deployment


ALICE = "alice"
BOB = "bob"
CAROL = "carol"

HOUSE_BANKROLL = 1000 * TOKEN
ORACLE_FEE_RESERVE = 100 * TOKEN
PLAYER_FUNDS = 1000 * TOKEN

TEST_SETTINGS = {
    "house_edge_bp": 100,
    "wealth_tax_bp": 0,
    "wealth_tax_threshold": 300 * TOKEN,
    "min_bet": TOKEN // 10,
    "max_bet": 100 * TOKEN,
    "balance_max_profit_ratio": 24,
    "reward_percent": 50,
    "max_reward": 100 * TOKEN,
    "referral_fee_bp": 1000,
    "refund_timeout_blocks": 250,
    "oracle_fee": TOKEN // 10,
    "companion_share_percent": 10,
}


def make_config(**overrides) -> GameConfig:
    return GameConfig(**{**TEST_SETTINGS, **overrides})


def make_deployment(bankroll: int = HOUSE_BANKROLL, fee_reserve: int = ORACLE_FEE_RESERVE, **overrides) -> Deployment:
    deployment = build_deployment(make_config(**overrides))
    deployment.token.mint(deployment.service.address, bankroll)
    if fee_reserve:
        deployment.fee_token.mint(deployment.service.address, fee_reserve)
    return deployment


def fund_player(deployment: Deployment, player: str, amount: int = PLAYER_FUNDS) -> None:
    deployment.token.mint(player, amount)
    deployment.token.approve(player, deployment.service.address, amount)


def assert_exposure_conserved(deployment: Deployment) -> None:
    service = deployment.service
    open_exposure = sum(bet.possible_win_amount for bet in service.open_bets())
    assert service.locked_in_bets == open_exposure
    assert service.locked_in_bets <= deployment.token.balance_of(service.address)


@pytest.fixture
def deployment() -> Deployment:
    deployment = make_deployment()
    fund_player(deployment, ALICE)
    fund_player(deployment, BOB)
    return deployment
