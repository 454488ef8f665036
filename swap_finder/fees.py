"""
Byte-cost model for legacy-sized transactions.

The numbers approximate a signed P2PKH spend: 32 byte prevout hash, 4 byte
index, 1 byte script length, 107 byte scriptSig and 4 byte sequence per
input; 8 byte value, 1 byte length and 25 byte script per output; version,
locktime and the two counts as overhead. They are estimates, not exact
serialized sizes.
"""

import math

TX_OVERHEAD_BYTES = 4 + 1 + 1 + 4
TX_INPUT_BASE = 32 + 4 + 1 + 4
TX_INPUT_PUBKEYHASH = 107
TX_OUTPUT_BASE = 8 + 1
TX_OUTPUT_PUBKEYHASH = 25

INPUT_BYTES = TX_INPUT_BASE + TX_INPUT_PUBKEYHASH  # 148
OUTPUT_BYTES = TX_OUTPUT_BASE + TX_OUTPUT_PUBKEYHASH  # 34


def calculate_fee(num_inputs, num_outputs, fee_per_byte) -> int:
    """Estimate the fee for a transaction of the given shape."""
    return (
        (num_inputs * INPUT_BYTES) + (num_outputs * OUTPUT_BYTES) + TX_OVERHEAD_BYTES
    ) * math.ceil(fee_per_byte)


def input_bytes(utxo=None) -> int:
    """Size of one input. Every input is assumed to be a P2PKH spend."""
    return INPUT_BYTES


def output_bytes(output=None) -> int:
    """Size of one output; a known locking script overrides the estimate."""
    script = getattr(output, "script", None)
    if script:
        return TX_OUTPUT_BASE + len(script) // 2
    return OUTPUT_BYTES


def transaction_bytes(inputs, outputs) -> int:
    """Estimated size of a whole transaction."""
    return (
        TX_OVERHEAD_BYTES
        + sum(input_bytes(i) for i in inputs)
        + sum(output_bytes(o) for o in outputs)
    )


def dust_threshold(fee_rate: int) -> int:
    """Smallest change worth creating: what it costs to spend it later."""
    return input_bytes() * fee_rate
