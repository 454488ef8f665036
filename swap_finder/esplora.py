"""Esplora REST client feeding the decoder and the swap matcher."""

from typing import Any, Sequence

import httpx
import structlog
from cachetools import TTLCache

from .config import config
from .errors import CollaboratorError
from .models import UTXO, Block, NormalizedTransaction
from .networks import NetworkParameters, get_network
from .polling import gather_or_cancel
from .transactions import decode_raw_transaction, normalize_transaction_object

logger = structlog.get_logger()

# Confirmed entries per page of /address/:address/txs and its /chain pages
CHAIN_PAGE_SIZE = 25


class EsploraClient:
    """
    Thin async wrapper over an Esplora (Blockstream / mempool.space) API.

    Implements the transaction source the swap matcher expects. Transport
    failures surface as CollaboratorError; retrying is up to the caller.
    """

    def __init__(
        self,
        base_url: str | None = None,
        network: NetworkParameters | None = None,
    ):
        """Initialize the client."""
        self.base_url = (base_url or config.esplora_api_url).rstrip("/")
        self.network = network or get_network(config.network)
        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            headers={"Accept": "application/json"},
        )
        # Tip height changes every block, keep it briefly
        self._tip_cache: TTLCache = TTLCache(maxsize=1, ttl=config.tip_cache_ttl)

    async def _get(self, path: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Esplora request failed", url=url, error=str(e))
            raise CollaboratorError(f"GET {url} failed: {e}") from e
        return response

    async def get_tip_height(self, refresh: bool = False) -> int:
        """Current chain height, from the cache unless `refresh` is set."""
        if not refresh and "tip" in self._tip_cache:
            return self._tip_cache["tip"]
        response = await self._get("/blocks/tip/height")
        height = int(response.text.strip())
        self._tip_cache["tip"] = height
        return height

    async def get_raw_transaction(self, txid: str) -> str:
        """Serialized transaction as hex."""
        response = await self._get(f"/tx/{txid}/hex")
        return response.text.strip()

    async def get_transaction(self, txid: str) -> NormalizedTransaction | None:
        """
        Fetch, decode and normalize a transaction.

        Returns None when the API does not know the transaction yet.
        """
        try:
            info = (await self._get(f"/tx/{txid}")).json()
        except CollaboratorError as e:
            cause = e.__cause__
            if (
                isinstance(cause, httpx.HTTPStatusError)
                and cause.response.status_code == 404
            ):
                return None
            raise

        raw = await self.get_raw_transaction(txid)
        tx = decode_raw_transaction(raw, self.network)

        block = None
        status: dict[str, Any] = info.get("status", {})
        if status.get("confirmed"):
            height = status["block_height"]
            tip = await self.get_tip_height()
            if height > tip:
                # Cached tip predates the block holding the transaction
                tip = await self.get_tip_height(refresh=True)
            tx = tx.model_copy(update={"confirmations": max(tip - height + 1, 1)})
            block = Block(hash=status["block_hash"], number=status["block_height"])

        return normalize_transaction_object(tx, fee=info.get("fee"), block=block)

    async def get_address_history(self, address: str) -> list[str]:
        """
        Txids touching `address`, newest first.

        The first page holds the mempool entries and the newest confirmed
        ones. Older confirmed history is paged through `/txs/chain/:last_txid`
        until a page comes back short.
        """
        entries = (await self._get(f"/address/{address}/txs")).json()
        txids = [entry["txid"] for entry in entries]
        page = [e for e in entries if e.get("status", {}).get("confirmed")]

        while len(page) >= CHAIN_PAGE_SIZE:
            last_txid = page[-1]["txid"]
            path = f"/address/{address}/txs/chain/{last_txid}"
            page = (await self._get(path)).json()
            txids.extend(entry["txid"] for entry in page)

        logger.debug(
            "Fetched address history", address=address, transactions=len(txids)
        )
        return txids

    async def get_parsed_and_confirmed_transactions(
        self, references: Sequence[str]
    ) -> list[NormalizedTransaction | None]:
        """Fetch several transactions concurrently, keeping their order."""
        return await gather_or_cancel(
            *(self.get_transaction(ref) for ref in references)
        )

    async def get_utxos(self, address: str) -> list[UTXO]:
        """Unspent outputs of `address`."""
        response = await self._get(f"/address/{address}/utxo")
        return [
            UTXO(
                txid=entry["txid"],
                vout=entry["vout"],
                value=entry["value"],
                address=address,
            )
            for entry in response.json()
        ]

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
