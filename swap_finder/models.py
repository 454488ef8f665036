"""
Data structures for atomic swap discovery and funding transactions.

Two families live here: the swap side (parameters, instruction payloads and
the events we hand back to callers) and the UTXO side (decoded transactions,
coin selection inputs and results). Everything is a pydantic model so values
coming from collaborators get validated at the boundary.
"""

import re
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SECRET_HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class InstructionTag(int, Enum):
    """Swap phase discriminator embedded in the on-chain instruction data."""

    INITIATE = 0  # Funds locked behind the secret hash
    CLAIM = 1  # Secret revealed, recipient takes the funds
    REFUND = 2  # Expiration passed, funds returned to the initiator


class SwapParameters(BaseModel):
    """
    Terms agreed for a single swap.

    These never change after initiation, so the model is frozen. They are
    the reference every candidate transaction is compared against.
    """

    model_config = ConfigDict(frozen=True)

    recipient_address: str = Field(description="Address allowed to claim")
    refund_address: str = Field(description="Address refunded after expiry")
    secret_hash: str = Field(description="SHA256 of the secret, hex encoded")
    value: int = Field(ge=0, description="Swap amount in the smallest unit")
    expiration: int = Field(description="Timestamp or block height of expiry")

    @field_validator("secret_hash")
    @classmethod
    def validate_secret_hash(cls, v):
        """Normalise to lowercase and require a 32-byte digest."""
        v = v.lower()
        if not SECRET_HASH_PATTERN.match(v):
            raise ValueError("secret_hash must be 64 hex characters")
        return v


class InitiatePayload(BaseModel):
    """Instruction data of an initiate transaction."""

    model_config = ConfigDict(frozen=True)

    instruction: Literal[InstructionTag.INITIATE] = InstructionTag.INITIATE
    buyer: str = Field(description="Recipient of the locked funds")
    seller: str = Field(description="Initiator, refunded on expiry")
    secret_hash: str
    value: int
    expiration: int


class ClaimPayload(BaseModel):
    """Instruction data of a claim transaction."""

    model_config = ConfigDict(frozen=True)

    instruction: Literal[InstructionTag.CLAIM] = InstructionTag.CLAIM
    secret: str = Field(description="Revealed preimage, hex encoded")


class RefundPayload(BaseModel):
    """Instruction data of a refund transaction. Carries nothing else."""

    model_config = ConfigDict(frozen=True)

    instruction: Literal[InstructionTag.REFUND] = InstructionTag.REFUND


SwapPayload = Annotated[
    Union[InitiatePayload, ClaimPayload, RefundPayload],
    Field(discriminator="instruction"),
]


class ScriptSig(BaseModel):
    """Unlocking script of an input."""

    asm: str
    hex: str


class ScriptPubKey(BaseModel):
    """Locking script of an output with its classification."""

    asm: str
    hex: str
    req_sigs: int = Field(default=1, description="Signatures required to spend")
    type: str = Field(description="Script classification, e.g. pubkeyhash")
    addresses: list[str] = Field(
        default_factory=list, description="Addresses derived for the network"
    )


class TxInput(BaseModel):
    """Decoded transaction input."""

    txid: str = Field(description="Previous transaction id (display order)")
    vout: int = Field(description="Previous output index")
    script_sig: ScriptSig
    txinwitness: list[str] = Field(default_factory=list)
    sequence: int


class TxOutput(BaseModel):
    """Decoded transaction output."""

    value: Decimal = Field(description="Amount in whole coins")
    n: int = Field(description="Output index")
    script_pubkey: ScriptPubKey


class CanonicalTransaction(BaseModel):
    """
    Chain-agnostic view of a raw UTXO transaction.

    Only ever produced by the decoder, mirrors the shape of a node's
    decoderawtransaction answer.
    """

    model_config = ConfigDict(frozen=True)

    txid: str = Field(description="Hash without witness data")
    hash: str = Field(description="Hash including witness data")
    version: int
    locktime: int
    size: int = Field(description="Serialized size in bytes")
    vsize: int = Field(description="Virtual size in vbytes")
    weight: int = Field(description="BIP141 weight units")
    vin: list[TxInput]
    vout: list[TxOutput]
    hex: str = Field(description="Raw serialized transaction")
    confirmations: int | None = Field(
        None, description="Confirmations reported by the node, if known"
    )


class Block(BaseModel):
    """Confirming block metadata."""

    hash: str
    number: int


class NormalizedTransaction(BaseModel):
    """
    Transaction summary shared by every chain.

    `raw` holds the decoded UTXO transaction, `payload` the parsed swap
    instruction on instruction-based ledgers. Fee and block fields stay
    None unless that context was supplied.
    """

    hash: str
    value: int = Field(description="Total output value in the smallest unit")
    raw: CanonicalTransaction | None = None
    payload: SwapPayload | None = None
    confirmations: int = 0
    fee: int | None = None
    fee_price: int | None = Field(None, description="Fee per virtual byte")
    block_hash: str | None = None
    block_number: int | None = None
    secret: str | None = None


class SwapEvent(BaseModel):
    """A located swap-phase transaction."""

    phase: InstructionTag
    transaction: NormalizedTransaction
    secret: str | None = Field(None, description="Secret revealed by a claim")


class UTXO(BaseModel):
    """Spendable output offered to coin selection."""

    model_config = ConfigDict(frozen=True)

    txid: str
    vout: int
    value: int = Field(ge=0, description="Amount in satoshis")
    address: str | None = None
    script_pubkey: str | None = None


class OutputTarget(BaseModel):
    """
    Requested transaction output.

    Change outputs appended by coin selection have no address; the wallet
    assigns one.
    """

    address: str | None = None
    value: int = Field(ge=0, description="Amount in satoshis")
    script: str | None = Field(None, description="Locking script hex")


class CoinSelectionResult(BaseModel):
    """Inputs and outputs chosen for a funding transaction."""

    inputs: list[UTXO]
    outputs: list[OutputTarget]
    fee: int
