"""Network parameter sets for address encoding."""

from pydantic import BaseModel, ConfigDict, Field
from bitcoin.base58 import Base58Error
from bitcoin.base58 import decode as base58_decode


class NetworkParameters(BaseModel):
    """Prefixes needed to turn a locking script into an address."""

    model_config = ConfigDict(frozen=True)

    name: str
    bech32: str = Field(description="Human readable part of segwit addresses")
    pub_key_hash: int = Field(description="Base58 version byte for P2PKH")
    script_hash: int = Field(description="Base58 version byte for P2SH")
    coin_type: str = Field(description="BIP44 coin type")
    is_testnet: bool = False


BITCOIN = NetworkParameters(
    name="bitcoin",
    bech32="bc",
    pub_key_hash=0x00,
    script_hash=0x05,
    coin_type="0",
)

TESTNET = NetworkParameters(
    name="bitcoin_testnet",
    bech32="tb",
    pub_key_hash=0x6F,
    script_hash=0xC4,
    coin_type="1",
    is_testnet=True,
)

REGTEST = NetworkParameters(
    name="bitcoin_regtest",
    bech32="bcrt",
    pub_key_hash=0x6F,
    script_hash=0xC4,
    coin_type="1",
    is_testnet=True,
)

NETWORKS = {
    "bitcoin": BITCOIN,
    "testnet": TESTNET,
    "regtest": REGTEST,
}


def get_network(name: str) -> NetworkParameters:
    """Look up a parameter set by its short name."""
    try:
        return NETWORKS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown network: {name}") from None


def get_address_network(address: str) -> NetworkParameters | None:
    """Guess the network an address belongs to, None if nothing matches."""
    lowered = address.lower()
    # Longest hrp first so bcrt1 is not mistaken for bc1
    for network in sorted(NETWORKS.values(), key=lambda n: -len(n.bech32)):
        if lowered.startswith(network.bech32 + "1"):
            return network

    try:
        prefix = base58_decode(address)[0]
    except (Base58Error, IndexError):
        return None

    for network in NETWORKS.values():
        if prefix in (network.pub_key_hash, network.script_hash):
            return network
    return None


def compress_pub_key(pub_key: str) -> str:
    """Compress a 65-byte uncompressed public key given as hex."""
    x = pub_key[2:66]
    y = pub_key[66:130]
    prefix = "02" if int(y[62:64], 16) % 2 == 0 else "03"
    return prefix + x
