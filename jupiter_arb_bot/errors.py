from __future__ import annotations


class ArbBotError(Exception):
    """Base class for every error the bot raises on purpose."""


class InvalidAmount(ArbBotError):
    """Zero or negative amount passed to a profit calculation."""


class NoRouteFound(ArbBotError):
    """Quote provider returned no viable route."""


class SubmissionRejected(ArbBotError):
    """Swap could not be built, signed or sent."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class ConfirmationTimeout(ArbBotError):
    """Lookup attempts ran out before the transaction showed up on-chain."""


class RateLimited(ArbBotError):
    """Provider answered HTTP 429."""


class BalanceShortfall(ArbBotError):
    """Wallet balance is below the configured trade size."""


class StartupError(ArbBotError):
    """Unrecoverable problem while setting the bot up."""
