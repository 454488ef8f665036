"""
Swap transaction discovery on instruction-based ledgers.

Neither chain knows what a swap is, so we rebuild that view off-chain: walk
an address's history, look at the instruction tag each transaction carries
and check the candidates against the agreed swap parameters. History is
treated as most-recent-first, as the source returns it, and the first
acceptable transaction wins.
"""

import hashlib
from typing import Callable, Protocol, Sequence

import structlog

from .config import config
from .errors import PendingTransaction, UnexpectedInstruction
from .models import (
    ClaimPayload,
    InitiatePayload,
    InstructionTag,
    NormalizedTransaction,
    SwapEvent,
    SwapParameters,
)
from .polling import gather_or_cancel

logger = structlog.get_logger()

Validation = Callable[[SwapParameters, object], bool]


class TransactionSource(Protocol):
    """What the matcher needs from a chain client."""

    async def get_address_history(self, address: str) -> list[str]:
        """References of every transaction touching `address`."""
        ...

    async def get_parsed_and_confirmed_transactions(
        self, references: Sequence[str]
    ) -> list[NormalizedTransaction | None]:
        """Full transactions for `references`, in the same order."""
        ...


def compare_params(swap_params: SwapParameters, init: InitiatePayload) -> bool:
    """Check an initiate instruction against the agreed terms, field by field."""
    return (
        swap_params.recipient_address == init.buyer
        and swap_params.refund_address == init.seller
        and swap_params.secret_hash == init.secret_hash
        and swap_params.value == init.value
        and swap_params.expiration == init.expiration
    )


def validate_secret(swap_params: SwapParameters, claim: ClaimPayload) -> bool:
    """True when the revealed secret hashes to the swap's secret hash."""
    try:
        digest = hashlib.sha256(bytes.fromhex(claim.secret)).hexdigest()
    except ValueError:
        return False
    return digest == swap_params.secret_hash


DEFAULT_VALIDATIONS: dict[InstructionTag, Validation] = {
    InstructionTag.INITIATE: compare_params,
    InstructionTag.CLAIM: validate_secret,
}


def batch_signatures(history: Sequence[str], batch_size: int = 100) -> list[list[str]]:
    """Split history into consecutive chunks of at most `batch_size`."""
    return [
        list(history[start : start + batch_size])
        for start in range(0, len(history), batch_size)
    ]


class SwapMatcher:
    """Finds the transaction behind each phase of a swap."""

    def __init__(self, source: TransactionSource, batch_size: int | None = None):
        """
        Args:
            source: Chain client providing history and parsed transactions
            batch_size: Maximum references per bulk fetch
        """
        self.source = source
        self.batch_size = batch_size or config.history_batch_size

    async def find_initiate_swap_transaction(
        self, swap_params: SwapParameters
    ) -> NormalizedTransaction | None:
        """The initiator's own history holds the initiate transaction."""
        event = await self.find_swap_event(
            swap_params.refund_address, swap_params, InstructionTag.INITIATE
        )
        return event.transaction if event else None

    async def find_claim_swap_transaction(
        self, swap_params: SwapParameters, initiation_tx_hash: str
    ) -> NormalizedTransaction | None:
        """Search the buyer's history for a claim revealing the secret."""
        init = await self._get_initiation(initiation_tx_hash)
        event = await self.find_swap_event(
            init.buyer, swap_params, InstructionTag.CLAIM
        )
        return event.transaction if event else None

    async def find_refund_swap_transaction(
        self, swap_params: SwapParameters, initiation_tx_hash: str
    ) -> NormalizedTransaction | None:
        """Search the seller's history for a refund."""
        init = await self._get_initiation(initiation_tx_hash)
        event = await self.find_swap_event(
            init.seller, swap_params, InstructionTag.REFUND
        )
        return event.transaction if event else None

    async def find_fund_swap_transaction(self, *args) -> None:
        """Initiation already moves the funds, there is no separate funding."""
        return None

    async def _get_initiation(self, initiation_tx_hash: str) -> InitiatePayload:
        transactions = await self.source.get_parsed_and_confirmed_transactions(
            [initiation_tx_hash]
        )
        init_tx = transactions[0] if transactions else None
        if init_tx is None:
            raise PendingTransaction(initiation_tx_hash)
        if not isinstance(init_tx.payload, InitiatePayload):
            instruction = init_tx.payload.instruction if init_tx.payload else None
            raise UnexpectedInstruction(initiation_tx_hash, instruction)
        return init_tx.payload

    async def find_swap_event(
        self,
        address: str,
        swap_params: SwapParameters,
        phase: InstructionTag,
        validation: Validation | None = None,
    ) -> SwapEvent | None:
        """
        Scan `address` for the transaction representing `phase`.

        Refunds are accepted on the tag alone since the program already
        enforced them. Initiate and claim candidates must also pass
        `validation`, which defaults to the phase's own predicate.
        Collaborator errors propagate untouched and cancel the batch
        fetches still running.
        """
        if validation is None:
            validation = DEFAULT_VALIDATIONS.get(phase)

        history = await self.source.get_address_history(address)
        batches = batch_signatures(history, self.batch_size)
        logger.debug(
            "Scanning address history",
            address=address,
            phase=phase.name,
            transactions=len(history),
            batches=len(batches),
        )

        matrix = await gather_or_cancel(
            *(self.source.get_parsed_and_confirmed_transactions(b) for b in batches)
        )

        for transactions in matrix:
            for tx in transactions:
                if tx is None or tx.payload is None:
                    continue
                if tx.payload.instruction != phase:
                    continue

                if phase != InstructionTag.REFUND and not validation(
                    swap_params, tx.payload
                ):
                    continue

                secret = tx.payload.secret if phase == InstructionTag.CLAIM else None
                if secret is not None:
                    tx = tx.model_copy(update={"secret": secret})

                logger.info(
                    "Found swap transaction",
                    address=address,
                    phase=phase.name,
                    tx_hash=tx.hash,
                )
                return SwapEvent(phase=phase, transaction=tx, secret=secret)

        logger.debug("No swap transaction found", address=address, phase=phase.name)
        return None
