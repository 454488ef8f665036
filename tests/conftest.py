"""Shared transaction fixtures built with python-bitcoinlib."""

import pytest
from bitcoin.core import (
    COIN,
    COutPoint,
    CTransaction,
    CTxIn,
    CTxInWitness,
    CTxOut,
    CTxWitness,
    lx,
    x,
)
from bitcoin.core.script import (
    OP_CHECKSIG,
    OP_DUP,
    OP_EQUALVERIFY,
    OP_HASH160,
    OP_RETURN,
    CScript,
    CScriptWitness,
)

# hash160 of the compressed generator point public key
KEY_HASH = x("751e76e8199196d454941c45d1b3a323f1433bd6")
PREV_TXID = "aa" * 32
SIGNATURE = b"\x30" * 72
PUBKEY = b"\x02" * 33


@pytest.fixture
def legacy_tx():
    """P2PKH spend paying a P2PKH output and an OP_RETURN."""
    txin = CTxIn(
        COutPoint(lx(PREV_TXID), 1),
        CScript([SIGNATURE[:71], PUBKEY]),
        0xFFFFFFFF,
    )
    outputs = [
        CTxOut(
            COIN // 2,
            CScript([OP_DUP, OP_HASH160, KEY_HASH, OP_EQUALVERIFY, OP_CHECKSIG]),
        ),
        CTxOut(0, CScript([OP_RETURN, b"hello"])),
    ]
    return CTransaction([txin], outputs, 0, 1)


@pytest.fixture
def witness_tx():
    """Single segwit input with a two item witness paying to P2WPKH."""
    txin = CTxIn(COutPoint(lx(PREV_TXID), 0), CScript(), 0xFFFFFFFD)
    txout = CTxOut(12345, CScript([0, KEY_HASH]))
    witness = CTxWitness([CTxInWitness(CScriptWitness([SIGNATURE, PUBKEY]))])
    return CTransaction([txin], [txout], 0, 2, witness)
