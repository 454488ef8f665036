"""
Raw transaction decoding and normalization.

Turns serialized UTXO transactions into `CanonicalTransaction` records in
the same shape a node's decoderawtransaction returns, and reduces those to
the chain-agnostic `NormalizedTransaction`. Deserialization itself is left
to python-bitcoinlib; this module only adds script classification, address
derivation per network and the size metrics.
"""

import binascii
import io
import math
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Sequence

import structlog
from bitcoin import segwit_addr
from bitcoin.base58 import CBase58Data
from bitcoin.core import COIN, CTransaction, b2lx, b2x
from bitcoin.core.script import (
    OP_1NEGATE,
    CScript,
    CScriptInvalidError,
    CScriptOp,
)
from bitcoin.core.serialize import BytesSerializer, SerializationError, VarIntSerializer

from .errors import DecodeError
from .models import (
    Block,
    CanonicalTransaction,
    NormalizedTransaction,
    ScriptPubKey,
    ScriptSig,
    TxInput,
    TxOutput,
)
from .networks import NetworkParameters

logger = structlog.get_logger()

WITNESS_SCALE_FACTOR = 4


class ScriptType(str, Enum):
    """Classification of an output's locking script."""

    PUBKEYHASH = "pubkeyhash"
    SCRIPTHASH = "scripthash"
    WITNESS_V0_KEYHASH = "witness_v0_keyhash"
    WITNESS_V0_SCRIPTHASH = "witness_v0_scripthash"
    WITNESS_V1_TAPROOT = "witness_v1_taproot"
    PUBKEY = "pubkey"
    MULTISIG = "multisig"
    NULLDATA = "nulldata"
    WITNESS_COMMITMENT = "witnesscommitment"
    NONSTANDARD = "nonstandard"


def _is_p2pkh(script: bytes) -> bool:
    # OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG
    return (
        len(script) == 25
        and script[:3] == b"\x76\xa9\x14"
        and script[23:] == b"\x88\xac"
    )


def _is_p2pk(script: bytes) -> bool:
    return script[-1:] == b"\xac" and (
        (len(script) == 35 and script[0] == 33)
        or (len(script) == 67 and script[0] == 65)
    )


def _is_multisig(script: CScript) -> bool:
    # OP_m <n pubkeys> OP_n OP_CHECKMULTISIG
    try:
        ops = list(script.raw_iter())
    except CScriptInvalidError:
        return False
    if len(ops) < 4 or ops[-1][0] != 0xAE:
        return False
    m, n = ops[0][0] - 0x50, ops[-2][0] - 0x50
    if not 1 <= m <= n <= 16:
        return False
    keys = ops[1:-2]
    return len(keys) == n and all(
        data is not None and len(data) in (33, 65) for _, data, _ in keys
    )


def classify_output_script(script: CScript) -> ScriptType:
    """Work out the standard template a locking script follows, if any."""
    raw = bytes(script)
    if _is_p2pkh(raw):
        return ScriptType.PUBKEYHASH
    if script.is_p2sh():
        return ScriptType.SCRIPTHASH
    if script.is_witness_v0_keyhash():
        return ScriptType.WITNESS_V0_KEYHASH
    if script.is_witness_v0_scripthash():
        return ScriptType.WITNESS_V0_SCRIPTHASH
    if len(raw) == 34 and raw[:2] == b"\x51\x20":
        return ScriptType.WITNESS_V1_TAPROOT
    if _is_p2pk(raw):
        return ScriptType.PUBKEY
    if _is_multisig(script):
        return ScriptType.MULTISIG
    # Witness commitments are OP_RETURN outputs too, check them first
    if raw[:6] == b"\x6a\x24\xaa\x21\xa9\xed" and len(raw) >= 38:
        return ScriptType.WITNESS_COMMITMENT
    if raw[:1] == b"\x6a":
        return ScriptType.NULLDATA
    return ScriptType.NONSTANDARD


def _required_signatures(script: CScript, script_type: ScriptType) -> int:
    if script_type == ScriptType.MULTISIG:
        return bytes(script)[0] - 0x50
    return 1


def address_from_output_script(
    script: CScript, network: NetworkParameters
) -> str | None:
    """
    Encode the address paying to `script`, or None for scripts without one.

    Only P2PKH, P2SH and version 0 witness programs are encoded.
    """
    raw = bytes(script)
    if _is_p2pkh(raw):
        return str(CBase58Data.from_bytes(raw[3:23], network.pub_key_hash))
    if script.is_p2sh():
        return str(CBase58Data.from_bytes(raw[2:22], network.script_hash))
    if script.is_witness_v0_keyhash() or script.is_witness_v0_scripthash():
        return segwit_addr.encode(network.bech32, 0, raw[2:])
    return None


def _minimal_op(data: bytes):
    if len(data) == 0:
        return CScriptOp(0)
    if len(data) == 1 and 1 <= data[0] <= 16:
        return CScriptOp.encode_op_n(data[0])
    if data == b"\x81":
        return OP_1NEGATE
    return None


def script_to_asm(script: CScript) -> str:
    """Render a script the way node RPCs do: opcode names and hex pushes."""
    chunks = []
    try:
        for opcode, data, _ in script.raw_iter():
            if data is not None:
                op = _minimal_op(data)
                chunks.append(data.hex() if op is None else str(op))
            else:
                chunks.append(str(CScriptOp(opcode)))
    except CScriptInvalidError:
        chunks.append("[error]")
    return " ".join(chunks)


def _parse(raw) -> tuple[bytes, CTransaction]:
    if isinstance(raw, str):
        try:
            raw = binascii.unhexlify(raw.strip())
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Transaction is not valid hex: {e}") from e
    try:
        return raw, CTransaction.deserialize(raw)
    except SerializationError as e:
        raise DecodeError(f"Malformed transaction: {e}") from e


def _witness_stack(tx: CTransaction, idx: int) -> list[str]:
    if idx >= len(tx.wit.vtxinwit):
        return []
    return [b2x(item) for item in tx.wit.vtxinwit[idx].scriptWitness.stack]


def decode_raw_transaction(raw, network: NetworkParameters) -> CanonicalTransaction:
    """
    Decode a serialized transaction.

    Args:
        raw: Serialized transaction as bytes or hex
        network: Parameters used to derive output addresses

    Raises:
        DecodeError: The input is not a well-formed transaction
    """
    raw_bytes, tx = _parse(raw)

    vin = [
        TxInput(
            txid=b2lx(txin.prevout.hash),
            vout=txin.prevout.n,
            script_sig=ScriptSig(
                asm=script_to_asm(txin.scriptSig), hex=b2x(txin.scriptSig)
            ),
            txinwitness=_witness_stack(tx, idx),
            sequence=txin.nSequence,
        )
        for idx, txin in enumerate(tx.vin)
    ]

    vout = []
    for n, txout in enumerate(tx.vout):
        script = txout.scriptPubKey
        script_type = classify_output_script(script)
        address = address_from_output_script(script, network)
        vout.append(
            TxOutput(
                value=Decimal(txout.nValue) / COIN,
                n=n,
                script_pubkey=ScriptPubKey(
                    asm=script_to_asm(script),
                    hex=b2x(script),
                    req_sigs=_required_signatures(script, script_type),
                    type=script_type.value,
                    addresses=[address] if address else [],
                ),
            )
        )

    stripped = io.BytesIO()
    tx.stream_serialize(stripped, include_witness=False)
    base_size = len(stripped.getvalue())
    total_size = len(raw_bytes)
    weight = base_size * (WITNESS_SCALE_FACTOR - 1) + total_size

    txid = b2lx(tx.GetTxid())
    logger.debug("Decoded transaction", txid=txid, inputs=len(vin), outputs=len(vout))

    return CanonicalTransaction(
        txid=txid,
        hash=b2lx(tx.GetHash()),
        version=tx.nVersion,
        locktime=tx.nLockTime,
        size=total_size,
        vsize=math.ceil(weight / WITNESS_SCALE_FACTOR),
        weight=weight,
        vin=vin,
        vout=vout,
        hex=raw_bytes.hex(),
    )


def normalize_transaction_object(
    tx: CanonicalTransaction,
    fee: int | None = None,
    block: Block | None = None,
) -> NormalizedTransaction:
    """
    Summarise a decoded transaction.

    The output total is accumulated in Decimal so fractional coin amounts
    convert to satoshis exactly.
    """
    value = sum((Decimal(out.value) * COIN for out in tx.vout), Decimal(0))
    result = NormalizedTransaction(hash=tx.txid, value=int(value), raw=tx)

    if fee is not None:
        result.fee = fee
        result.fee_price = int(
            (Decimal(fee) / tx.vsize).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        )

    if block is not None:
        result.block_hash = block.hash
        result.block_number = block.number
        result.confirmations = tx.confirmations or 0

    return result


def witness_stack_to_script_witness(witness: Sequence[bytes]) -> bytes:
    """Serialize a witness stack: item count, then each length-prefixed item."""
    f = io.BytesIO()
    VarIntSerializer.stream_serialize(len(witness), f)
    for item in witness:
        BytesSerializer.stream_serialize(bytes(item), f)
    return f.getvalue()
