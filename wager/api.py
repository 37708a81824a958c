import hmac
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import ApiSettings
from .errors import (
    BetNotFoundError, InvalidStateTransitionError, NothingToWithdrawError,
    ReentrantCallError, RewardNotYetAvailableError, UnauthorizedCallerError, WagerError,
)
from .models import (
    Bet, OracleCallbackRequest, PlaceBetRequest, PoolStatus, RewardBalance, WithdrawalReceipt,
)
from .service import Deployment, build_deployment

logger = logging.getLogger(__name__)


def _matches(supplied: str, expected: str) -> bool:
    return hmac.compare_digest(supplied.encode(), expected.encode())


def _to_http(error: WagerError) -> HTTPException:
    if isinstance(error, BetNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, UnauthorizedCallerError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, (InvalidStateTransitionError, RewardNotYetAvailableError,
                            NothingToWithdrawError, ReentrantCallError)):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(error))


def create_app(
    deployment: Optional[Deployment] = None,
    settings: Optional[ApiSettings] = None,
    root_path: str = "",
) -> FastAPI:
    deployment = deployment or build_deployment()
    settings = settings or ApiSettings()
    service = deployment.service
    rewards = deployment.rewards

    app = FastAPI(
        title="Wager Settlement API",
        description="Provably-fair bet placement, oracle settlement, refunds and loyalty rewards",
        version="1.0.0",
        root_path=root_path,
    )
    app.state.deployment = deployment

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def verify_oracle_key(x_oracle_key: Optional[str] = Header(None)) -> str:
        """Only the oracle may call back; it proves itself with the shared key."""
        if not settings.oracle_key or not x_oracle_key or not _matches(x_oracle_key, settings.oracle_key):
            logger.warning("Rejected oracle callback with an invalid or missing key")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid or missing oracle key",
            )
        return deployment.oracle.address

    def current_participant(x_api_key: Optional[str] = Header(None)) -> str:
        if x_api_key:
            for key, address in settings.participant_keys.items():
                if _matches(x_api_key, key):
                    return address
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API key",
        )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "wager-settlement", "height": deployment.host.height}

    @app.post("/bets", response_model=Bet, status_code=status.HTTP_201_CREATED, tags=["Bets"])
    def place_bet(request: PlaceBetRequest, participant: str = Depends(current_participant)) -> Bet:
        try:
            return service.place_bet(
                participant, request.amount, request.win_selector,
                request.modulo, request.referrer,
            )
        except WagerError as e:
            raise _to_http(e)

    @app.get("/bets/{bet_id}", response_model=Bet, tags=["Bets"])
    def get_bet(bet_id: int) -> Bet:
        try:
            return service.get_bet(bet_id)
        except BetNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Bet {bet_id} not found")

    @app.post("/bets/{bet_id}/refund", response_model=Bet, tags=["Bets"])
    def refund_bet(bet_id: int, caller: str = Depends(current_participant)) -> Bet:
        try:
            return service.refund(caller, bet_id)
        except WagerError as e:
            raise _to_http(e)

    @app.post("/oracle/callback", response_model=Bet, tags=["Oracle"])
    def oracle_callback(request: OracleCallbackRequest, caller: str = Depends(verify_oracle_key)) -> Bet:
        try:
            return service.deliver(caller, request.request_id, request.random_value)
        except WagerError as e:
            raise _to_http(e)

    @app.post("/rewards/withdraw", response_model=WithdrawalReceipt, tags=["Rewards"])
    def withdraw_rewards(participant: str = Depends(current_participant)) -> WithdrawalReceipt:
        try:
            return rewards.withdraw(participant)
        except WagerError as e:
            raise _to_http(e)

    @app.get("/users/{address}/rewards", response_model=RewardBalance, tags=["Rewards"])
    def get_reward_balance(address: str) -> RewardBalance:
        return rewards.get_balance(address)

    @app.get("/pool", response_model=PoolStatus, tags=["System"])
    def get_pool_status() -> PoolStatus:
        return service.pool_status()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
