"""
Indexer access - the ledger query API the wallet reads from.

The indexer is an external collaborator: eventually consistent, append-only,
and it never reports a previously spent nullifier as unspent again. Every
read here is idempotent and safe for callers to retry; this module never
retries by itself.

HttpIndexerClient endpoints (JSON):
    GET /slot                                  -> {"slot": int}
    GET /commitments?pools=a,b&since=&until=   -> {"commitments": [CommitmentRecord]}
    GET /nullifiers?pools=a,b&since=&until=    -> {"nullifiers": [NullifierRecord]}
    GET /nullifiers/{hex}                      -> {"spent": bool}
    GET /pools/{pool}/root                     -> {"root": hex}
    GET /pools/{pool}/proof/{commitment hex}   -> MerkleProofRecord

Slot ranges are half-open on the left: (since, until].
"""

import asyncio
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import aiohttp
from pydantic import ValidationError

from shieldcore.crypto.poseidon import field_to_hex, hex_to_field
from shieldcore.core.errors import IndexerError
from shieldcore.core.indexer.records import CommitmentRecord, MerkleProofRecord, NullifierRecord
from shieldcore.core.state.merkle import MerkleProof
from shieldcore.utils.logger import get_logger

logger = get_logger("indexer")


@runtime_checkable
class IndexerClient(Protocol):
    """Read interface over ledger commitments, nullifiers and Merkle state."""

    async def get_latest_slot(self) -> int:
        ...

    async def fetch_commitments(self, pool_ids: Sequence[str], since: int, until: int) -> List[CommitmentRecord]:
        ...

    async def fetch_nullifiers(self, pool_ids: Sequence[str], since: int, until: int) -> List[NullifierRecord]:
        ...

    async def is_nullifier_spent(self, nullifier: int) -> bool:
        ...

    async def get_merkle_root(self, pool_id: str) -> int:
        ...

    async def get_merkle_proof(self, pool_id: str, commitment: int) -> MerkleProof:
        ...


# =============================================================================
# HTTP Client
# =============================================================================


class HttpIndexerClient:
    """
    aiohttp client for a remote indexer.

    Concurrency is bounded by a semaphore shared by all requests of this
    client; network, HTTP and decoding failures surface as IndexerError.
    """

    def __init__(
        self,
        base_url: str,
        max_concurrent_requests: int = 8,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Indexer root URL
            max_concurrent_requests: Upper bound on in-flight requests
            request_timeout: Total timeout per request in seconds
            session: Externally owned session (not closed by close())
        """
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpIndexerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        async with self._semaphore:
            try:
                async with self._get_session().get(url, params=params) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise IndexerError(f"GET {path} failed with HTTP {resp.status}: {body[:200]}")
                    try:
                        return await resp.json()
                    except ValueError as e:
                        raise IndexerError(f"GET {path} returned invalid JSON: {e}") from e
            except aiohttp.ClientError as e:
                raise IndexerError(f"GET {path} failed: {e}") from e
            except asyncio.TimeoutError as e:
                raise IndexerError(f"GET {path} timed out after {self.request_timeout}s") from e

    @staticmethod
    def _range_params(pool_ids: Sequence[str], since: int, until: int) -> dict:
        return {"pools": ",".join(pool_ids), "since": str(since), "until": str(until)}

    async def get_latest_slot(self) -> int:
        data = await self._get("/slot")
        try:
            return int(data["slot"])
        except (KeyError, TypeError, ValueError) as e:
            raise IndexerError(f"Malformed slot response: {data!r}") from e

    async def fetch_commitments(self, pool_ids: Sequence[str], since: int, until: int) -> List[CommitmentRecord]:
        data = await self._get("/commitments", self._range_params(pool_ids, since, until))
        try:
            records = [CommitmentRecord.model_validate(item) for item in data["commitments"]]
        except (KeyError, TypeError, ValidationError) as e:
            raise IndexerError(f"Malformed commitments response: {e}") from e
        logger.debug(f"Fetched {len(records)} commitments in ({since}, {until}]")
        return records

    async def fetch_nullifiers(self, pool_ids: Sequence[str], since: int, until: int) -> List[NullifierRecord]:
        data = await self._get("/nullifiers", self._range_params(pool_ids, since, until))
        try:
            records = [NullifierRecord.model_validate(item) for item in data["nullifiers"]]
        except (KeyError, TypeError, ValidationError) as e:
            raise IndexerError(f"Malformed nullifiers response: {e}") from e
        logger.debug(f"Fetched {len(records)} nullifiers in ({since}, {until}]")
        return records

    async def is_nullifier_spent(self, nullifier: int) -> bool:
        data = await self._get(f"/nullifiers/{field_to_hex(nullifier)}")
        spent = data.get("spent") if isinstance(data, dict) else None
        if not isinstance(spent, bool):
            raise IndexerError(f"Malformed nullifier status response: {data!r}")
        return spent

    async def get_merkle_root(self, pool_id: str) -> int:
        data = await self._get(f"/pools/{pool_id}/root")
        try:
            return hex_to_field(data["root"])
        except (KeyError, TypeError, ValueError) as e:
            raise IndexerError(f"Malformed root response: {data!r}") from e

    async def get_merkle_proof(self, pool_id: str, commitment: int) -> MerkleProof:
        data = await self._get(f"/pools/{pool_id}/proof/{field_to_hex(commitment)}")
        try:
            return MerkleProofRecord.model_validate(data).to_proof()
        except ValidationError as e:
            raise IndexerError(f"Malformed Merkle proof response: {e}") from e
