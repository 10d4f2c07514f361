"""Operator wallet: native-token transfers on an EVM chain via web3.py.

Payouts are sent from a single operator account whose private key lives in
service configuration. web3.py is synchronous, so blocking calls run in a
worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from instarelief.core.config import settings
from instarelief.core.errors import ReliefError

logger = logging.getLogger(__name__)

NATIVE_TRANSFER_GAS = 21_000
PRIORITY_FEE_GWEI = 2


class TransferError(ReliefError):
    """A transfer failed. ``retryable`` marks transient chain conditions."""

    status_code = 502
    code = "TRANSFER_FAILED"

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


@dataclass(frozen=True)
class TransferReceipt:
    tx_hash: str
    explorer_url: str
    block_number: int | None


def classify_error(exc: Exception) -> TransferError:
    """Translate a web3/RPC failure into a user-facing TransferError."""
    if isinstance(exc, TransferError):
        return exc

    text = str(exc).lower()
    if "insufficient funds" in text:
        return TransferError("Insufficient balance in operator wallet")
    if isinstance(exc, TimeExhausted) or "timeout" in text or "timed out" in text:
        return TransferError("Network congestion - please try again", retryable=True)
    if "nonce too low" in text or "underpriced" in text or "already known" in text:
        return TransferError("Network congestion - please try again", retryable=True)
    if isinstance(exc, (ConnectionError, OSError)):
        return TransferError(f"Cannot reach chain RPC: {exc}", retryable=True)
    return TransferError(str(exc) or "Failed to send transfer")


class ChainClient:
    def __init__(
        self,
        rpc_url: str | None = None,
        private_key: str | None = None,
        web3: Web3 | None = None,
    ):
        self.w3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url or settings.chain_rpc_url, request_kwargs={"timeout": 15})
        )
        key = private_key if private_key is not None else settings.chain_private_key
        self.account = Account.from_key(key) if key else None

    @property
    def operator_address(self) -> str | None:
        return self.account.address if self.account else None

    @staticmethod
    def is_valid_address(address: str) -> bool:
        return bool(address) and Web3.is_address(address)

    @staticmethod
    def explorer_url(tx_hash: str) -> str:
        return settings.chain_explorer_tx_url.format(tx_hash=tx_hash)

    async def get_balance(self, address: str) -> float:
        """Balance in whole tokens; 0.0 if the address is invalid or RPC fails."""
        try:
            wei = await asyncio.to_thread(
                self.w3.eth.get_balance, Web3.to_checksum_address(address)
            )
        except Exception:
            logger.warning("Balance lookup failed for %s", address, exc_info=True)
            return 0.0
        return float(Web3.from_wei(wei, "ether"))

    async def send_native(self, to_address: str, amount: float) -> TransferReceipt:
        """Send ``amount`` whole tokens to ``to_address`` and wait for confirmation.

        Raises:
            TransferError: On any failure, classified as retryable or not.
        """
        if self.account is None:
            raise TransferError("Operator wallet is not configured (set CHAIN_PRIVATE_KEY)")
        if not self.is_valid_address(to_address):
            raise TransferError(f"Invalid recipient address: {to_address}")
        if amount <= 0:
            raise TransferError(f"Transfer amount must be positive, got {amount}")

        try:
            return await asyncio.to_thread(self._send_sync, to_address, amount)
        except Exception as exc:
            raise classify_error(exc) from exc

    def _send_sync(self, to_address: str, amount: float) -> TransferReceipt:
        w3 = self.w3
        value = Web3.to_wei(Decimal(f"{amount:.18f}"), "ether")

        priority_fee = Web3.to_wei(PRIORITY_FEE_GWEI, "gwei")
        tx = {
            "type": 2,
            "to": Web3.to_checksum_address(to_address),
            "value": value,
            "gas": NATIVE_TRANSFER_GAS,
            "maxFeePerGas": w3.eth.gas_price + priority_fee,
            "maxPriorityFeePerGas": priority_fee,
            "nonce": w3.eth.get_transaction_count(self.account.address, "pending"),
            "chainId": w3.eth.chain_id,
        }

        signed = self.account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=settings.chain_confirmation_timeout_seconds
        )

        tx_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            raise TransferError(f"Transaction {tx_hex} reverted")

        logger.info(
            "Sent %.8f to %s in block %s (%s)",
            amount, to_address, receipt["blockNumber"], tx_hex,
        )
        return TransferReceipt(
            tx_hash=tx_hex,
            explorer_url=self.explorer_url(tx_hex),
            block_number=receipt["blockNumber"],
        )


@lru_cache(maxsize=1)
def get_chain_client() -> ChainClient:
    """Process-wide client; also the FastAPI dependency (override in tests)."""
    return ChainClient()
