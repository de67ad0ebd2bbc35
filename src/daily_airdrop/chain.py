from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from web3 import Web3
from web3.exceptions import TimeExhausted

from .config import Settings
from .errors import BalanceError, ConfigError, TransferError

log = logging.getLogger("chain")

ERC20_ABI: List[Dict[str, Any]] = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
]


@dataclass(frozen=True)
class TransferReceipt:
    tx_hash: str
    block_number: int
    gas_used: int
    confirmations: int


class PendingTransfer:
    def __init__(
        self,
        w3: Any,
        tx_hash: str,
        poll_latency_s: float = 2.0,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._w3 = w3
        self.tx_hash = tx_hash
        self._poll_latency_s = poll_latency_s
        self._sleep = sleep
        self._clock = clock

    def wait_for_confirmations(self, confirmations: int, timeout_s: float) -> TransferReceipt:
        """Block until the tx is ``confirmations`` blocks deep or ``timeout_s`` passes."""
        deadline = self._clock() + timeout_s
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=timeout_s, poll_latency=self._poll_latency_s
            )
        except TimeExhausted as e:
            raise TransferError(f"No receipt for {self.tx_hash} after {timeout_s:.0f}s") from e
        except Exception as e:
            raise TransferError(f"Receipt lookup failed for {self.tx_hash}: {e}") from e

        if receipt["status"] != 1:
            raise TransferError(f"Transaction {self.tx_hash} reverted")

        mined_in = int(receipt["blockNumber"])
        while True:
            try:
                depth = int(self._w3.eth.block_number) - mined_in + 1
            except Exception as e:
                raise TransferError(f"Could not read block height: {e}") from e
            if depth >= confirmations:
                return TransferReceipt(
                    tx_hash=self.tx_hash,
                    block_number=mined_in,
                    gas_used=int(receipt["gasUsed"]),
                    confirmations=depth,
                )
            if self._clock() >= deadline:
                raise TransferError(
                    f"Only {depth}/{confirmations} confirmations for {self.tx_hash} after {timeout_s:.0f}s"
                )
            self._sleep(self._poll_latency_s)


class ChainClient:
    def __init__(
        self,
        w3: Any,
        token_address: str,
        private_key: str,
        chain_id: Optional[int] = None,
    ) -> None:
        self.w3 = w3
        self.account = w3.eth.account.from_key(private_key)
        self.address = self.account.address
        self.token = w3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        self._chain_id = chain_id

    @staticmethod
    def from_settings(settings: Settings) -> "ChainClient":
        w3 = Web3(
            Web3.HTTPProvider(
                settings.rpc_url, request_kwargs={"timeout": settings.http_timeout_s * 4}
            )
        )
        try:
            return ChainClient(
                w3,
                token_address=settings.token_address,
                private_key=settings.private_key,
                chain_id=settings.chain_id,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid PRIVATE_KEY or TOKEN_ADDRESS: {e}") from None

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def _read(self, what: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception as e:
            raise BalanceError(f"Could not read {what}: {e}") from e

    def native_balance(self) -> int:
        return int(self._read("native balance", lambda: self.w3.eth.get_balance(self.address)))

    def token_balance(self) -> int:
        return int(
            self._read(
                "token balance",
                lambda: self.token.functions.balanceOf(self.address).call(),
            )
        )

    def token_decimals(self) -> int:
        return int(self._read("token decimals", lambda: self.token.functions.decimals().call()))

    def token_name(self) -> str:
        return self._read("token name", lambda: self.token.functions.name().call())

    def token_symbol(self) -> str:
        return self._read("token symbol", lambda: self.token.functions.symbol().call())

    def transfer(self, to: str, amount: int) -> PendingTransfer:
        try:
            nonce = self.w3.eth.get_transaction_count(self.address, "pending")
            tx = self.token.functions.transfer(
                Web3.to_checksum_address(to), amount
            ).build_transaction(
                {"from": self.address, "nonce": nonce, "chainId": self.chain_id}
            )
            signed = self.account.sign_transaction(tx)
            # web3.py version compatibility: rawTransaction vs raw_transaction
            raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(raw))
        except Exception as e:
            raise TransferError(f"Could not submit transfer to {to}: {e}") from e

        log.debug("Submitted %s (nonce %s)", tx_hash, nonce)
        return PendingTransfer(self.w3, tx_hash)
