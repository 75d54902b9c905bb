"""
Ledger client for the reward contract on an EVM network.
Provides read access to processing/registration state and the
verifier-signed ``processTransaction`` call.

This module is the only place where RPC and library exceptions are turned
into tagged processing errors.
"""

import asyncio
from typing import List, Optional, Dict, Any
from dataclasses import dataclass

import aiohttp
import structlog
from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3RPCError,
)

from sdk_batch.core.config import LedgerConfig
from sdk_batch.core.exceptions import (
    AlreadyProcessedError,
    LedgerError,
    LedgerRevertError,
    NotFoundError,
    ProcessingError,
    RetryableInfraError,
    UnconfirmedError,
)


logger = structlog.get_logger(__name__)


REWARD_CONTRACT_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "processedTransactions",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "registeredApps",
        "stateMutability": "view",
        "inputs": [{"name": "appId", "type": "string"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getAppRegisteredCampaigns",
        "stateMutability": "view",
        "inputs": [{"name": "appId", "type": "string"}],
        "outputs": [{"name": "", "type": "uint32[]"}],
    },
    {
        "type": "function",
        "name": "getAppCampaignMetrics",
        "stateMutability": "view",
        "inputs": [
            {"name": "appId", "type": "string"},
            {"name": "campaignId", "type": "uint32"},
        ],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "totalFees", "type": "uint256"},
                    {"name": "totalVolume", "type": "uint256"},
                    {"name": "txCount", "type": "uint256"},
                    {"name": "estimatedReward", "type": "uint256"},
                ],
            }
        ],
    },
    {
        "type": "function",
        "name": "getCampaign",
        "stateMutability": "view",
        "inputs": [{"name": "campaignId", "type": "uint32"}],
        "outputs": [
            {"name": "totalPool", "type": "uint256"},
            {"name": "distributedRewards", "type": "uint256"},
            {"name": "startDate", "type": "uint64"},
            {"name": "endDate", "type": "uint64"},
            {"name": "active", "type": "bool"},
        ],
    },
    {
        "type": "function",
        "name": "processTransaction",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "appId", "type": "string"},
            {"name": "txHash", "type": "bytes32"},
            {"name": "gasUsed", "type": "uint256"},
            {"name": "gasPrice", "type": "uint256"},
            {"name": "transactionValue", "type": "uint256"},
        ],
        "outputs": [],
    },
]

# Revert reason emitted by the contract's duplicate-processing guard
DUPLICATE_REVERT_MARKER = "already processed"

RETRYABLE_HTTP_STATUSES = frozenset({429, 502, 503, 504})

RETRYABLE_RPC_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "replacement transaction underpriced",
    "already known",
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "header not found",
    "temporarily unavailable",
    "gateway",
    "network error",
    "connection",
    "econnrefused",
    "etimedout",
)


@dataclass
class ChainTransaction:
    """Raw transaction as reported by the network."""
    tx_hash: str
    from_address: str
    to_address: Optional[str]
    value: int
    gas_price: int
    input_data: bytes
    block_number: Optional[int]


@dataclass
class ChainReceipt:
    """Transaction receipt as reported by the network."""
    tx_hash: str
    gas_used: int
    effective_gas_price: Optional[int]
    block_number: int
    status: int


@dataclass
class CampaignMetrics:
    """Per (app, campaign) aggregates held by the contract."""
    total_fees: int
    total_volume: int
    tx_count: int
    estimated_reward: int


@dataclass
class CampaignInfo:
    """Campaign header held by the contract."""
    campaign_id: int
    total_pool: int
    distributed_rewards: int
    start_date: int
    end_date: int
    active: bool

    def is_running(self, now_ts: int) -> bool:
        """Active flag set and ``now`` inside the campaign window."""
        return self.active and self.start_date <= now_ts <= self.end_date


@dataclass
class LedgerConfirmation:
    """Mined result of a ``processTransaction`` call."""
    process_tx_hash: str
    block_number: int
    gas_used: int


def to_bytes32(tx_hash: str) -> bytes:
    """Convert a 0x-prefixed 32-byte hex hash to raw bytes."""
    raw = HexBytes(tx_hash)
    if len(raw) != 32:
        raise ValueError(f"Expected a 32-byte hash, got {len(raw)} bytes")
    return bytes(raw)


class LedgerClient:
    """
    Async client for the reward contract.

    Read calls are plain ``eth_call``s. ``process_transaction`` signs with the
    verifier key, waits for the receipt and serializes nonce usage through a
    lock so a single process never races itself.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, private_key: Optional[str] = None):
        self.rpc_config = config or LedgerConfig.get_rpc_config()
        self._private_key = private_key
        self.w3: Optional[AsyncWeb3] = None
        self.contract = None
        self.account = None
        self._send_lock = asyncio.Lock()
        self.logger = logger.bind(service="ledger_client")

    async def initialize(self) -> None:
        """Create the provider, contract handle and verifier account."""
        if self.w3 is not None:
            return

        from sdk_batch.core.config import settings

        endpoint = self.rpc_config["endpoint"]
        address = self.rpc_config["contract_address"]
        private_key = self._private_key or settings.verifier_private_key

        if not endpoint or not address or not private_key:
            raise LedgerError("Ledger client requires RPC_URL, CONTRACT_ADDRESS and VERIFIER_PRIVATE_KEY")

        try:
            self.account = Account.from_key(private_key)
        except Exception as e:
            raise LedgerError("Invalid verifier private key") from e

        if not AsyncWeb3.is_address(address):
            raise LedgerError(f"Invalid contract address: {address}")

        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(
                endpoint,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.rpc_config["timeout"])},
            )
        )
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=REWARD_CONTRACT_ABI,
        )

        self.logger.info(
            "Ledger client initialized",
            contract=self.contract.address,
            verifier=self.account.address,
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self.w3 is not None:
            await self.w3.provider.disconnect()
        self.w3 = None
        self.contract = None

    async def health_check(self) -> bool:
        """Check that the RPC endpoint answers."""
        try:
            return await self._w3().is_connected()
        except Exception as e:
            self.logger.error("Ledger health check failed", error=str(e))
            return False

    def _w3(self) -> AsyncWeb3:
        if self.w3 is None:
            raise LedgerError("Ledger client not initialized. Call initialize() first.")
        return self.w3

    # Reads

    async def is_processed(self, tx_hash: str) -> bool:
        """``processedTransactions(hash)``."""
        self._w3()
        try:
            return bool(await self.contract.functions.processedTransactions(to_bytes32(tx_hash)).call())
        except Exception as e:
            self._raise_tagged(e, "processedTransactions", tx_hash)
            raise

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        """Fetch the raw transaction; ``NotFoundError`` when the network does not know it."""
        w3 = self._w3()
        try:
            tx = await w3.eth.get_transaction(tx_hash)
        except TransactionNotFound as e:
            raise NotFoundError(tx_hash) from e
        except Exception as e:
            self._raise_tagged(e, "get_transaction", tx_hash)
            raise

        if tx is None:
            raise NotFoundError(tx_hash)

        return ChainTransaction(
            tx_hash=tx_hash,
            from_address=tx["from"],
            to_address=tx.get("to"),
            value=int(tx.get("value") or 0),
            gas_price=int(tx.get("gasPrice") or 0),
            input_data=bytes(HexBytes(tx.get("input") or b"")),
            block_number=tx.get("blockNumber"),
        )

    async def get_receipt(self, tx_hash: str) -> ChainReceipt:
        """Fetch the receipt; ``UnconfirmedError`` when the transaction is not mined yet."""
        w3 = self._w3()
        try:
            receipt = await w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound as e:
            raise UnconfirmedError(tx_hash) from e
        except Exception as e:
            self._raise_tagged(e, "get_transaction_receipt", tx_hash)
            raise

        if receipt is None:
            raise UnconfirmedError(tx_hash)

        effective = receipt.get("effectiveGasPrice")
        return ChainReceipt(
            tx_hash=tx_hash,
            gas_used=int(receipt["gasUsed"]),
            effective_gas_price=int(effective) if effective is not None else None,
            block_number=int(receipt["blockNumber"]),
            status=int(receipt.get("status", 1)),
        )

    async def is_app_registered(self, app_id: str) -> bool:
        """``registeredApps(appId)``."""
        self._w3()
        try:
            return bool(await self.contract.functions.registeredApps(app_id).call())
        except Exception as e:
            self._raise_tagged(e, "registeredApps")
            raise

    async def get_app_campaigns(self, app_id: str) -> List[int]:
        """``getAppRegisteredCampaigns(appId)``."""
        self._w3()
        try:
            campaigns = await self.contract.functions.getAppRegisteredCampaigns(app_id).call()
        except Exception as e:
            self._raise_tagged(e, "getAppRegisteredCampaigns")
            raise
        return [int(c) for c in campaigns]

    async def get_app_campaign_metrics(self, app_id: str, campaign_id: int) -> CampaignMetrics:
        """``getAppCampaignMetrics(appId, campaignId)``."""
        self._w3()
        try:
            total_fees, total_volume, tx_count, estimated_reward = await (
                self.contract.functions.getAppCampaignMetrics(app_id, campaign_id).call()
            )
        except Exception as e:
            self._raise_tagged(e, "getAppCampaignMetrics")
            raise

        return CampaignMetrics(
            total_fees=int(total_fees),
            total_volume=int(total_volume),
            tx_count=int(tx_count),
            estimated_reward=int(estimated_reward),
        )

    async def get_campaign(self, campaign_id: int) -> CampaignInfo:
        """``getCampaign(campaignId)``."""
        self._w3()
        try:
            total_pool, distributed, start_date, end_date, active = await (
                self.contract.functions.getCampaign(campaign_id).call()
            )
        except Exception as e:
            self._raise_tagged(e, "getCampaign")
            raise

        return CampaignInfo(
            campaign_id=campaign_id,
            total_pool=int(total_pool),
            distributed_rewards=int(distributed),
            start_date=int(start_date),
            end_date=int(end_date),
            active=bool(active),
        )

    # Write

    async def process_transaction(
        self,
        app_id: str,
        tx_hash: str,
        gas_used: int,
        gas_price: int,
        value: int,
    ) -> LedgerConfirmation:
        """
        Submit ``processTransaction`` signed by the verifier and wait for it to be mined.

        Raises:
            AlreadyProcessedError: the contract's duplicate guard rejected the call
            LedgerRevertError: any other revert, or a mined receipt with status 0
            RetryableInfraError: network, timeout, rate limit or nonce contention
        """
        w3 = self._w3()
        call = self.contract.functions.processTransaction(
            app_id, to_bytes32(tx_hash), gas_used, gas_price, value
        )

        try:
            async with self._send_lock:
                nonce = await w3.eth.get_transaction_count(self.account.address, "pending")
                transaction = await call.build_transaction({
                    "from": self.account.address,
                    "nonce": nonce,
                })
                signed = self.account.sign_transaction(transaction)
                sent_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)

            self.logger.info(
                "Ledger mutation sent, waiting for confirmation",
                tx_hash=tx_hash,
                process_tx_hash=sent_hash.to_0x_hex(),
            )

            receipt = await w3.eth.wait_for_transaction_receipt(
                sent_hash,
                timeout=self.rpc_config["confirmation_timeout"],
            )
        except Exception as e:
            self._raise_tagged(e, "processTransaction", tx_hash)
            raise

        process_tx_hash = HexBytes(receipt["transactionHash"]).to_0x_hex()
        if int(receipt.get("status", 1)) == 0:
            raise LedgerRevertError(
                "Ledger mutation reverted",
                {"tx_hash": tx_hash, "process_tx_hash": process_tx_hash},
            )

        return LedgerConfirmation(
            process_tx_hash=process_tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
        )

    def _raise_tagged(
        self,
        error: Exception,
        operation: str,
        tx_hash: Optional[str] = None,
    ) -> None:
        """Raise the tagged equivalent of an RPC/library exception.

        Returns without raising when the error is already tagged or is not
        recognized; the caller re-raises the original in that case.
        """
        if isinstance(error, (ProcessingError, LedgerError)):
            return

        details = {"operation": operation, "tx_hash": tx_hash}

        if isinstance(error, ContractLogicError):
            reason = str(getattr(error, "message", None) or error)
            if DUPLICATE_REVERT_MARKER in reason.lower() and tx_hash:
                raise AlreadyProcessedError(tx_hash) from error
            raise LedgerRevertError(f"Contract reverted: {reason}", details) from error

        if isinstance(error, (TimeExhausted, asyncio.TimeoutError)):
            raise RetryableInfraError(
                f"{operation} timed out", timeout=True, details=details
            ) from error

        if isinstance(error, aiohttp.ClientResponseError):
            if error.status in RETRYABLE_HTTP_STATUSES:
                raise RetryableInfraError(
                    f"{operation} failed: HTTP {error.status}",
                    timeout=error.status == 504,
                    details={**details, "http_status": error.status},
                ) from error
            return

        if isinstance(error, (aiohttp.ClientConnectionError, ConnectionError)):
            raise RetryableInfraError(f"{operation} failed: {error}", details=details) from error

        if isinstance(error, Web3RPCError):
            message = str(getattr(error, "message", None) or error).lower()
            if DUPLICATE_REVERT_MARKER in message and tx_hash:
                raise AlreadyProcessedError(tx_hash) from error
            if any(marker in message for marker in RETRYABLE_RPC_MARKERS):
                raise RetryableInfraError(
                    f"{operation} failed: {message}",
                    timeout=any(m in message for m in ("timeout", "timed out", "etimedout")),
                    details=details,
                ) from error
            if "execution reverted" in message:
                raise LedgerRevertError(f"Contract reverted: {message}", details) from error


# Global client instance
_client: Optional[LedgerClient] = None


async def get_ledger_client() -> LedgerClient:
    """Get or create the global ledger client."""
    global _client
    if _client is None:
        client = LedgerClient()
        await client.initialize()
        _client = client
    return _client


async def close_ledger_client() -> None:
    """Close the global ledger client."""
    global _client
    if _client:
        await _client.close()
        _client = None
