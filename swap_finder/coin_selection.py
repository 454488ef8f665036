"""
UTXO coin selection for funding transactions.

Two strategies share the byte model in `fees`: an accumulative pass that
walks candidates in order, and a blackjack pass that looks for a set of
inputs which lands close enough to the target that no change is needed.
The default tries blackjack on value-sorted candidates first and falls back
to accumulating. When the caller pins inputs (a swap step that has to spend
a specific earlier output) only the accumulative strategy is used, with the
pinned inputs at the front, because it is the only one that keeps list order.
"""

import math
from typing import Iterable, Sequence

import structlog

from .errors import InsufficientFunds
from .fees import dust_threshold, input_bytes, output_bytes, transaction_bytes
from .models import UTXO, CoinSelectionResult, OutputTarget

logger = structlog.get_logger()


class _Shortfall(Exception):
    """Internal signal that a strategy ran out of candidates."""

    def __init__(self, fee: int):
        super().__init__(fee)
        self.fee = fee


def _sum_values(items) -> int:
    return sum(item.value for item in items)


def finalize(
    inputs: list[UTXO], outputs: list[OutputTarget], fee_rate: int
) -> CoinSelectionResult:
    """Add a change output if the leftover is worth it and compute the fee."""
    bytes_accum = transaction_bytes(inputs, outputs)
    fee_after_extra_output = fee_rate * (bytes_accum + output_bytes())
    remainder = _sum_values(inputs) - (_sum_values(outputs) + fee_after_extra_output)

    if remainder > dust_threshold(fee_rate):
        outputs = outputs + [OutputTarget(value=remainder)]

    fee = _sum_values(inputs) - _sum_values(outputs)
    return CoinSelectionResult(inputs=inputs, outputs=outputs, fee=fee)


def accumulative(
    utxos: Sequence[UTXO],
    outputs: list[OutputTarget],
    fee_rate: int,
    pinned: int = 0,
) -> CoinSelectionResult:
    """
    Add candidates in list order until targets plus fee are covered.

    Inputs that cost more in fees than they carry are skipped, except for the
    first `pinned` candidates which are always taken.
    """
    bytes_accum = transaction_bytes([], outputs)
    in_accum = 0
    inputs: list[UTXO] = []
    out_accum = _sum_values(outputs)

    for idx, utxo in enumerate(utxos):
        utxo_bytes = input_bytes(utxo)
        # Detrimental input
        if idx >= pinned and fee_rate * utxo_bytes > utxo.value:
            continue

        bytes_accum += utxo_bytes
        in_accum += utxo.value
        inputs.append(utxo)

        if idx + 1 < pinned or in_accum < out_accum + fee_rate * bytes_accum:
            continue

        return finalize(inputs, outputs, fee_rate)

    raise _Shortfall(fee_rate * bytes_accum)


def blackjack(
    utxos: Sequence[UTXO], outputs: list[OutputTarget], fee_rate: int
) -> CoinSelectionResult:
    """Only take inputs that do not overshoot the target by more than dust."""
    bytes_accum = transaction_bytes([], outputs)
    in_accum = 0
    inputs: list[UTXO] = []
    out_accum = _sum_values(outputs)
    threshold = dust_threshold(fee_rate)

    for utxo in utxos:
        utxo_bytes = input_bytes(utxo)
        fee = fee_rate * (bytes_accum + utxo_bytes)

        # Would waste value
        if in_accum + utxo.value > out_accum + fee + threshold:
            continue

        bytes_accum += utxo_bytes
        in_accum += utxo.value
        inputs.append(utxo)

        if in_accum < out_accum + fee:
            continue

        return finalize(inputs, outputs, fee_rate)

    raise _Shortfall(fee_rate * bytes_accum)


def coinselect(
    utxos: Sequence[UTXO], outputs: list[OutputTarget], fee_rate: int
) -> CoinSelectionResult:
    """Prefer few, large inputs: sort by effective value, then select."""
    ranked = sorted(
        utxos,
        key=lambda u: u.value - fee_rate * input_bytes(u),
        reverse=True,
    )
    try:
        return blackjack(ranked, outputs, fee_rate)
    except _Shortfall:
        return accumulative(ranked, outputs, fee_rate)


def select_coins(
    utxos: Iterable[UTXO],
    targets: Iterable[OutputTarget],
    fee_per_byte,
    fixed_inputs: Iterable[UTXO] = (),
) -> CoinSelectionResult:
    """
    Pick inputs for `targets` at `fee_per_byte`.

    Args:
        utxos: Spendable outputs to choose from
        targets: Outputs the transaction has to pay
        fee_per_byte: Fee rate, rounded up to a whole unit
        fixed_inputs: Outputs that must be spent no matter what

    Raises:
        InsufficientFunds: The UTXOs cannot pay for targets plus fee
    """
    utxos = list(utxos)
    outputs = list(targets)
    fixed = list(fixed_inputs)
    fee_rate = math.ceil(fee_per_byte)

    if fixed:
        # Pinned inputs go first so the accumulative pass takes them
        pinned = {(u.txid, u.vout) for u in fixed}
        candidates = fixed + [u for u in utxos if (u.txid, u.vout) not in pinned]
    else:
        candidates = utxos

    try:
        if fixed:
            result = accumulative(candidates, outputs, fee_rate, pinned=len(fixed))
        else:
            result = coinselect(candidates, outputs, fee_rate)
    except _Shortfall as e:
        logger.warning(
            "Insufficient funds for coin selection",
            available=_sum_values(candidates),
            required=_sum_values(outputs),
            fee=e.fee,
        )
        raise InsufficientFunds(
            f"Insufficient funds: need {_sum_values(outputs)} plus fee {e.fee}",
            fee=e.fee,
        ) from None

    logger.debug(
        "Selected coins",
        inputs=len(result.inputs),
        outputs=len(result.outputs),
        fee=result.fee,
        fixed=len(fixed),
    )
    return result
