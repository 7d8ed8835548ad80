"""
Bundle fan-out submitter.

Sends one pre-signed bundle to every configured block engine endpoint at
once, each endpoint running its own retry sequence, and reports the bundle
signature as soon as the fan-out has settled with at least one acceptance.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import aiohttp
import base58

from .config import DEFAULT_CONFIRM_TIMEOUT
from .endpoints import DEFAULT_ENDPOINTS, Endpoint
from .errors import BlockhashUnavailableError, BundleFanoutError, EndpointError, InvalidBundleError
from .retry import EndpointOutcome, RetryPolicy, send_with_retry

logger = logging.getLogger(__name__)

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
MAX_BUNDLE_TRANSACTIONS = 5
NO_ENDPOINT_ACCEPTED = "no_endpoint_accepted"
BUNDLE_EXPLORER_URL = "https://explorer.jito.wtf/bundle/{}"

_UNSIGNED = bytes(64)

@dataclass(frozen=True)
class BlockhashInfo:
    blockhash: Any     # solders Hash
    last_valid_block_height: int

@dataclass
class SubmissionResult:
    bundle_signature: str
    outcomes: list[EndpointOutcome]
    blockhash: Optional[BlockhashInfo]
    confirmed: bool = False
    error: Optional[BundleFanoutError] = None   # set when the bundle never reached the endpoints

    @property
    def winner(self) -> Optional[EndpointOutcome]:
        # First success in configured endpoint order, not first in time
        return next((o for o in self.outcomes if o.success), None)

    @property
    def accepted(self) -> bool:
        return self.winner is not None

    @property
    def signature(self) -> Optional[str]:
        return self.bundle_signature if self.accepted else None

    @property
    def bundle_id(self) -> Optional[str]:
        winner = self.winner
        return winner.bundle_id if winner else None

    @property
    def reason(self) -> Optional[str]:
        if self.accepted:
            return None
        return self.error.reason if self.error else NO_ENDPOINT_ACCEPTED

    @property
    def failures(self) -> dict[str, str]:
        return {o.endpoint.code: o.reason for o in self.outcomes if not o.success}

    def describe(self) -> str:
        if self.accepted:
            return f"bundle {self.bundle_signature} accepted by {self.winner.endpoint.code}"
        if self.error:
            return f"bundle not sent ({self.reason}): {self.error}"
        details = ", ".join(f"{code}: {reason}" for code, reason in self.failures.items())
        return f"no endpoint accepted the bundle ({details})"

def bundle_signature(transactions: Sequence[Any]) -> str:
    """Base58 form of the first signature of the first transaction."""
    return base58.b58encode(bytes(transactions[0].signatures[0])).decode("ascii")

def serialize_bundle(transactions: Sequence[Any]) -> list[str]:
    return [base58.b58encode(bytes(tx)).decode("ascii") for tx in transactions]

def _validate_bundle(transactions: Sequence[Any], commitment: str) -> list[Any]:
    if str(commitment) not in COMMITMENT_LEVELS:
        raise InvalidBundleError(
            f"Unsupported commitment {commitment!r}, expected one of {', '.join(COMMITMENT_LEVELS)}"
        )

    transactions = list(transactions or [])
    if not transactions:
        raise InvalidBundleError("Bundle must contain at least one transaction")
    if len(transactions) > MAX_BUNDLE_TRANSACTIONS:
        raise InvalidBundleError(
            f"Bundle has {len(transactions)} transactions, at most {MAX_BUNDLE_TRANSACTIONS} allowed"
        )

    for index, tx in enumerate(transactions):
        signatures = getattr(tx, "signatures", None)
        if not signatures or any(bytes(sig) == _UNSIGNED for sig in signatures):
            raise InvalidBundleError(f"Transaction {index} is not signed")
    return transactions

def _describe_payer(payer: Any) -> str:
    if payer is None:
        return "unknown"
    pubkey = getattr(payer, "pubkey", None)
    return str(pubkey() if callable(pubkey) else payer)

class BundleSubmitter:
    def __init__(
        self,
        connection,
        endpoints: Optional[Sequence[Endpoint]] = None,
        policy: Optional[RetryPolicy] = None,
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
    ):
        """
        Args:
            connection: Long-lived ledger client (solana AsyncClient), shared
                by every submission for blockhash fetches and confirmation
            endpoints: Relay endpoints, in the order used to pick the winner
            policy: Retry policy applied to each endpoint independently
            confirm_timeout: Upper bound in seconds on the confirmation wait
        """
        self.connection = connection
        self.endpoints = list(DEFAULT_ENDPOINTS if endpoints is None else endpoints)
        if not self.endpoints:
            raise ValueError("At least one relay endpoint is required")
        self.policy = policy or RetryPolicy()
        self.confirm_timeout = confirm_timeout
        self._background: set[asyncio.Task] = set()

    async def _resolve_blockhash(self, blockhash: Optional[BlockhashInfo]) -> BlockhashInfo:
        if blockhash is not None:
            return blockhash
        try:
            response = await self.connection.get_latest_blockhash()
        except Exception as e:
            # ledger clients raise transport, RPC and decoding errors alike
            raise BlockhashUnavailableError(f"could not fetch latest blockhash: {e!r}") from e
        return BlockhashInfo(
            blockhash=response.value.blockhash,
            last_valid_block_height=response.value.last_valid_block_height,
        )

    async def submit(
        self,
        transactions: Sequence[Any],
        payer: Any,
        commitment: str = "confirmed",
        blockhash: Optional[BlockhashInfo] = None,
    ) -> Optional[str]:
        """Submit a bundle and return its signature, or None if no endpoint accepted it."""
        result = await self.submit_bundle(transactions, payer, commitment, blockhash)
        return result.signature

    async def submit_bundle(
        self,
        transactions: Sequence[Any],
        payer: Any,
        commitment: str = "confirmed",
        blockhash: Optional[BlockhashInfo] = None,
    ) -> SubmissionResult:
        """
        Fan a signed bundle out to every endpoint and collect the outcome.

        Args:
            transactions: Signed transactions, in bundle order
            payer: Fee payer (Keypair, Pubkey or string), used for logging only
            commitment: processed, confirmed or finalized
            blockhash: Blockhash the bundle was built against. Fetched from
                the ledger when omitted.

        Returns:
            SubmissionResult describing every endpoint's outcome. A ledger
            failure while fetching the blockhash is reported there too, with
            reason "blockhash_unavailable" and no endpoint contacted.

        Raises:
            InvalidBundleError: If the bundle is empty, unsigned or the
                commitment is unknown
        """
        transactions = _validate_bundle(transactions, commitment)
        signature = bundle_signature(transactions)
        try:
            latest = await self._resolve_blockhash(blockhash)
        except BlockhashUnavailableError as e:
            logger.error("Bundle %s not sent: %s", signature, e)
            return SubmissionResult(bundle_signature=signature, outcomes=[], blockhash=None, error=e)
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [serialize_bundle(transactions)],
        }

        logger.info(
            "Sending bundle %s (%d txs, payer %s) to %d endpoints",
            signature, len(transactions), _describe_payer(payer), len(self.endpoints),
        )
        outcomes = await self._fan_out(payload)
        result = SubmissionResult(bundle_signature=signature, outcomes=outcomes, blockhash=latest)

        winner = result.winner
        if winner is None:
            logger.error("Bundle %s: %s", signature, result.describe())
            return result

        logger.info(
            "Bundle %s sent via %s after %d attempt(s)",
            signature, winner.endpoint.code, winner.attempts,
        )
        if winner.bundle_id:
            logger.info("Bundle ID: %s (%s)", winner.bundle_id, BUNDLE_EXPLORER_URL.format(winner.bundle_id))

        self._spawn(self._report_other_acceptances(result))
        result.confirmed = await self._confirm(
            signature, transactions[0].signatures[0], latest, commitment
        )
        return result

    async def _fan_out(self, payload: dict[str, Any]) -> list[EndpointOutcome]:
        async with aiohttp.ClientSession() as session:
            results = await asyncio.gather(
                *(send_with_retry(session, endpoint, payload, self.policy) for endpoint in self.endpoints),
                return_exceptions=True,
            )

        outcomes = []
        for endpoint, result in zip(self.endpoints, results):
            if isinstance(result, BaseException):
                logger.error("%s: unexpected failure: %r", endpoint.code, result)
                result = EndpointOutcome(endpoint, attempts=0, error=EndpointError(endpoint.url, repr(result)))
            outcomes.append(result)
        return outcomes

    async def _report_other_acceptances(self, result: SubmissionResult) -> None:
        others = [o.endpoint.code for o in result.outcomes if o.success and o is not result.winner]
        if others:
            logger.info(
                "Bundle %s also accepted by %d other endpoint(s): %s",
                result.bundle_signature, len(others), ", ".join(others),
            )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background bundle report failed: %r", task.exception())

    async def drain(self) -> None:
        """Wait for background reporting tasks still in flight."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _confirm(
        self, signature: str, tx_signature: Any, latest: BlockhashInfo, commitment: str
    ) -> bool:
        try:
            response = await asyncio.wait_for(
                self.connection.confirm_transaction(
                    tx_signature,
                    commitment=commitment,
                    last_valid_block_height=latest.last_valid_block_height,
                ),
                timeout=self.confirm_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Confirmation pending for %s after %.1fs; bundle was sent, check status manually",
                signature, self.confirm_timeout,
            )
            return False
        except Exception as e:
            logger.warning("Confirmation check for %s failed: %s", signature, e)
            return False

        statuses = getattr(response, "value", None) or []
        status = statuses[0] if statuses else None
        if status is None or status.err is not None:
            logger.warning("Bundle %s not confirmed: %s", signature, getattr(status, "err", "no status"))
            return False

        logger.info("Bundle %s confirmed (%s)", signature, commitment)
        return True
