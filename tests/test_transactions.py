"""Tests for transaction decoding, normalization and witness serialization."""

from decimal import Decimal

import pytest
from bitcoin.core import b2lx
from bitcoin.core.script import OP_1, OP_2, OP_CHECKMULTISIG, CScript

from swap_finder.errors import DecodeError
from swap_finder.models import Block
from swap_finder.networks import BITCOIN, TESTNET
from swap_finder.transactions import (
    ScriptType,
    address_from_output_script,
    classify_output_script,
    decode_raw_transaction,
    normalize_transaction_object,
    script_to_asm,
    witness_stack_to_script_witness,
)

KEY_HASH = "751e76e8199196d454941c45d1b3a323f1433bd6"


class TestDecodeRawTransaction:
    """Test decoding of serialized transactions."""

    def test_legacy_identifiers_and_sizes(self, legacy_tx):
        """Legacy transactions have txid == hash and weight == 4 * size."""
        raw = legacy_tx.serialize()
        tx = decode_raw_transaction(raw.hex(), BITCOIN)

        assert tx.txid == b2lx(legacy_tx.GetTxid())
        assert tx.hash == tx.txid
        assert tx.version == 1
        assert tx.locktime == 0
        assert tx.size == len(raw)
        assert tx.weight == 4 * len(raw)
        assert tx.vsize == len(raw)
        assert tx.hex == raw.hex()

    def test_accepts_raw_bytes(self, legacy_tx):
        """Bytes and hex input decode to the same record."""
        raw = legacy_tx.serialize()
        assert decode_raw_transaction(raw, BITCOIN) == decode_raw_transaction(
            raw.hex(), BITCOIN
        )

    def test_inputs(self, legacy_tx):
        """Previous txid is shown in display byte order."""
        tx = decode_raw_transaction(legacy_tx.serialize(), BITCOIN)

        txin = tx.vin[0]
        assert txin.txid == "aa" * 32
        assert txin.vout == 1
        assert txin.sequence == 0xFFFFFFFF
        assert txin.txinwitness == []
        assert txin.script_sig.hex == legacy_tx.vin[0].scriptSig.hex()
        assert txin.script_sig.asm == f"{'30' * 71} {'02' * 33}"

    def test_outputs(self, legacy_tx):
        """Outputs get value in coins, classification and addresses."""
        tx = decode_raw_transaction(legacy_tx.serialize(), BITCOIN)

        p2pkh, nulldata = tx.vout
        assert p2pkh.value == Decimal("0.5")
        assert p2pkh.n == 0
        assert p2pkh.script_pubkey.type == "pubkeyhash"
        assert p2pkh.script_pubkey.asm == (
            f"OP_DUP OP_HASH160 {KEY_HASH} OP_EQUALVERIFY OP_CHECKSIG"
        )
        assert p2pkh.script_pubkey.addresses == ["1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"]

        assert nulldata.value == Decimal(0)
        assert nulldata.script_pubkey.type == "nulldata"
        assert nulldata.script_pubkey.asm == "OP_RETURN 68656c6c6f"
        assert nulldata.script_pubkey.addresses == []

    def test_witness_transaction(self, witness_tx):
        """Witness data changes hash, weight and vsize but not txid."""
        raw = witness_tx.serialize()
        tx = decode_raw_transaction(raw, BITCOIN)

        assert tx.txid == b2lx(witness_tx.GetTxid())
        assert tx.hash == b2lx(witness_tx.GetHash())
        assert tx.txid != tx.hash
        assert tx.size == 192
        assert tx.weight == 438
        assert tx.vsize == 110
        assert tx.vin[0].txinwitness == ["30" * 72, "02" * 33]
        assert tx.vin[0].script_sig.asm == ""

        out = tx.vout[0]
        assert out.value == Decimal("0.00012345")
        assert out.script_pubkey.type == "witness_v0_keyhash"
        assert out.script_pubkey.asm == f"OP_0 {KEY_HASH}"
        assert out.script_pubkey.addresses == [
            "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
        ]

    def test_network_changes_addresses(self, witness_tx):
        """Segwit addresses use the network's bech32 prefix."""
        tx = decode_raw_transaction(witness_tx.serialize(), TESTNET)
        assert tx.vout[0].script_pubkey.addresses[0].startswith("tb1q")

    @pytest.mark.parametrize(
        "raw",
        ["zz", "0200", b"\x02\x00\x00\x00\x01", b""],
    )
    def test_malformed_input(self, raw):
        """Garbage and truncated data raise DecodeError."""
        with pytest.raises(DecodeError):
            decode_raw_transaction(raw, BITCOIN)

    def test_trailing_bytes(self, legacy_tx):
        """Extra data after the transaction is rejected."""
        with pytest.raises(DecodeError):
            decode_raw_transaction(legacy_tx.serialize() + b"\x00", BITCOIN)


class TestScripts:
    """Test script classification, asm and address derivation."""

    def test_classify_standard_templates(self):
        """Each standard template maps to its type."""
        pub = b"\x02" * 33
        cases = {
            CScript(bytes.fromhex("76a914" + KEY_HASH + "88ac")): ScriptType.PUBKEYHASH,
            CScript(bytes.fromhex("a914" + KEY_HASH + "87")): ScriptType.SCRIPTHASH,
            CScript(bytes.fromhex("0014" + KEY_HASH)): ScriptType.WITNESS_V0_KEYHASH,
            CScript(b"\x00\x20" + b"\x11" * 32): ScriptType.WITNESS_V0_SCRIPTHASH,
            CScript(b"\x51\x20" + b"\x11" * 32): ScriptType.WITNESS_V1_TAPROOT,
            CScript(b"\x21" + pub + b"\xac"): ScriptType.PUBKEY,
            CScript([OP_1, pub, pub, OP_2, OP_CHECKMULTISIG]): ScriptType.MULTISIG,
            CScript(b"\x6a\x24\xaa\x21\xa9\xed" + b"\x00" * 32): ScriptType.WITNESS_COMMITMENT,
            CScript(b"\x6a\x05hello"): ScriptType.NULLDATA,
            CScript(b"\x01\x02\x03"): ScriptType.NONSTANDARD,
        }
        for script, expected in cases.items():
            assert classify_output_script(script) == expected

    def test_multisig_needs_n_key_pushes(self):
        """OP_m and OP_n must frame exactly n public keys."""
        pub = b"\x02" * 33
        uncompressed = b"\x04" * 65
        malformed = [
            CScript(b"\x51\x52\xae"),
            CScript([OP_1, pub, OP_2, OP_CHECKMULTISIG]),
            CScript([OP_1, pub, b"\x02" * 20, OP_2, OP_CHECKMULTISIG]),
            CScript([OP_2, pub, pub, OP_1, OP_CHECKMULTISIG]),
        ]
        for script in malformed:
            assert classify_output_script(script) == ScriptType.NONSTANDARD

        script = CScript([OP_2, pub, uncompressed, OP_2, OP_CHECKMULTISIG])
        assert classify_output_script(script) == ScriptType.MULTISIG

    def test_p2sh_address(self):
        """P2SH uses the script hash version byte."""
        script = CScript(bytes.fromhex("a914" + KEY_HASH + "87"))
        assert address_from_output_script(script, BITCOIN).startswith("3")
        assert address_from_output_script(script, TESTNET).startswith("2")

    def test_nonstandard_script_has_no_address(self):
        """Scripts without an address give None instead of raising."""
        assert address_from_output_script(CScript(b"\x01\x02\x03"), BITCOIN) is None
        assert address_from_output_script(CScript(b"\x6a"), BITCOIN) is None

    def test_asm_minimal_pushes(self):
        """Small pushes render as opcodes."""
        script = CScript(b"\x00\x01\x05\x01\x81\x51")
        assert script_to_asm(script) == "OP_0 OP_5 OP_1NEGATE OP_1"

    def test_asm_truncated_push(self):
        """A push running past the end is marked instead of raising."""
        assert script_to_asm(CScript(b"\x76\x05\x01")) == "OP_DUP [error]"


class TestNormalizeTransaction:
    """Test reduction to the chain-agnostic summary."""

    def test_value_in_satoshis(self, legacy_tx, witness_tx):
        """Output totals convert to satoshis without float drift."""
        assert normalize_transaction_object(
            decode_raw_transaction(legacy_tx.serialize(), BITCOIN)
        ).value == 50000000
        assert normalize_transaction_object(
            decode_raw_transaction(witness_tx.serialize(), BITCOIN)
        ).value == 12345

    def test_without_fee_or_block(self, witness_tx):
        """Omitted context leaves fields unset."""
        tx = decode_raw_transaction(witness_tx.serialize(), BITCOIN)
        result = normalize_transaction_object(tx)

        assert result.hash == tx.txid
        assert result.raw == tx
        assert result.confirmations == 0
        assert result.fee is None
        assert result.fee_price is None
        assert result.block_hash is None
        assert result.block_number is None

    def test_fee_price(self, witness_tx):
        """Fee price is fee per vbyte, rounded half up."""
        tx = decode_raw_transaction(witness_tx.serialize(), BITCOIN)

        assert normalize_transaction_object(tx, fee=1000).fee_price == 9
        result = normalize_transaction_object(tx, fee=55)
        assert result.fee == 55
        assert result.fee_price == 1

    def test_block(self, witness_tx):
        """Block context copies hash, height and confirmations."""
        tx = decode_raw_transaction(witness_tx.serialize(), BITCOIN)
        tx = tx.model_copy(update={"confirmations": 6})
        result = normalize_transaction_object(
            tx, block=Block(hash="bb" * 32, number=800000)
        )

        assert result.block_hash == "bb" * 32
        assert result.block_number == 800000
        assert result.confirmations == 6
        assert result.fee is None


class TestWitnessSerialization:
    """Test witness stack encoding."""

    def test_matches_transaction_witness(self, witness_tx):
        """Encoding equals the witness section of the serialized transaction."""
        raw = witness_tx.serialize()
        encoded = witness_stack_to_script_witness([b"\x30" * 72, b"\x02" * 33])

        assert encoded == b"\x02\x48" + b"\x30" * 72 + b"\x21" + b"\x02" * 33
        assert raw[-4 - len(encoded) : -4] == encoded

    def test_large_item_uses_long_varint(self):
        """Items of 253 bytes or more get a three byte length prefix."""
        encoded = witness_stack_to_script_witness([b"\x01" * 253])
        assert encoded[:4] == b"\x01\xfd\xfd\x00"
        assert len(encoded) == 4 + 253

    def test_empty_stack(self):
        """An empty stack is a single zero count."""
        assert witness_stack_to_script_witness([]) == b"\x00"
