"""Exception types raised by the swap finder."""


class SwapFinderError(Exception):
    """Base class for all swap finder errors."""


class DecodeError(SwapFinderError):
    """Raw transaction bytes could not be parsed."""


class InsufficientFunds(SwapFinderError):
    """
    Available UTXOs cannot cover the requested targets plus fee.

    The fee of the last attempted selection is kept around so callers can
    tell the user how much more they need.
    """

    def __init__(self, message: str, fee: int | None = None):
        super().__init__(message)
        self.fee = fee


class PendingTransaction(SwapFinderError):
    """A counterpart transaction is not observable yet, retry later."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Transaction receipt is not available: {tx_hash}")
        self.tx_hash = tx_hash


class CollaboratorError(SwapFinderError):
    """A history or transaction source failed to answer."""


class UnexpectedInstruction(SwapFinderError):
    """A referenced transaction is visible but carries the wrong instruction."""

    def __init__(self, tx_hash: str, instruction=None):
        super().__init__(
            f"Transaction {tx_hash} is not an initiation (instruction: {instruction})"
        )
        self.tx_hash = tx_hash
        self.instruction = instruction
