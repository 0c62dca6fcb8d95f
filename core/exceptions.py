from abc import ABC


class BaseCustomException(Exception, ABC):
    """
    Base class for all custom exceptions.

    Attributes
    ----------
    kind : str
        Error taxonomy name reported on ``wallet-error`` events
    """

    kind = "Unknown"

    def __init__(self, message: str | None = None):
        self.message = message or self.get_default_message()
        super().__init__(self.message)

    def get_default_message(self) -> str:
        """
        Return default error message.

        Returns
        -------
        str
            Default error message
        """
        return "error.unknown"

    def get_status_code(self) -> int:
        """
        Return HTTP status code for exception.

        Returns
        -------
        int
            HTTP status code
        """
        return 500


class InvalidInputException(BaseCustomException):
    """Malformed address, value or seed (400)."""

    kind = "InvalidInput"

    def get_default_message(self) -> str:
        return "error.input.invalid"

    def get_status_code(self) -> int:
        return 400


class InvalidAddressException(InvalidInputException):
    """Invalid address exception."""

    def get_default_message(self) -> str:
        return "error.address.invalid"


class ContractNotFoundException(InvalidInputException):
    """Unknown or unconfigured contract name (404)."""

    def get_default_message(self) -> str:
        return "error.contract.not_found"

    def get_status_code(self) -> int:
        return 404


class TransportFailureException(BaseCustomException):
    """Node or indexer unreachable, or the request timed out (502)."""

    kind = "TransportFailure"

    def get_default_message(self) -> str:
        return "error.transport.failed"

    def get_status_code(self) -> int:
        return 502


class ChainRejectedException(BaseCustomException):
    """Transaction reverted or rejected before inclusion (409)."""

    kind = "ChainRejected"

    def get_default_message(self) -> str:
        return "error.chain.rejected"

    def get_status_code(self) -> int:
        return 409


class InsufficientFundsException(ChainRejectedException):
    """Not enough balance or spendable outputs."""

    def get_default_message(self) -> str:
        return "error.funds.insufficient"


class BroadcastRejectedException(ChainRejectedException):
    """Node refused the signed transaction."""

    def get_default_message(self) -> str:
        return "error.broadcast.rejected"


class ContextUnavailableException(BaseCustomException):
    """Destination-chain state required for an import could not be read (503)."""

    kind = "ContextUnavailable"

    def get_default_message(self) -> str:
        return "error.context.unavailable"

    def get_status_code(self) -> int:
        return 503
