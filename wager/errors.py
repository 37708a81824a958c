class WagerError(Exception):
    pass


class InsufficientOracleFeeError(WagerError):
    pass


class InvalidBetParametersError(WagerError):
    pass


class MaskOutOfRangeError(InvalidBetParametersError):
    pass


class RiskLimitExceededError(WagerError):
    pass


class InsufficientPoolFundsError(WagerError):
    pass


class BetNotFoundError(WagerError):
    pass


class InvalidStateTransitionError(WagerError):
    pass


class BetAlreadySettledError(InvalidStateTransitionError):
    pass


class RefundTooEarlyError(InvalidStateTransitionError):
    pass


class UnauthorizedCallerError(WagerError):
    pass


class ReentrantCallError(WagerError):
    pass


class RewardNotYetAvailableError(WagerError):
    pass


class NothingToWithdrawError(WagerError):
    pass


class ArithmeticOverflowError(WagerError):
    pass


class TransferRejectedError(WagerError):
    pass


class InvalidConfigurationError(WagerError):
    pass
