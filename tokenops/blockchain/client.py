"""
Blockchain Client

Async JSON-RPC access to every configured network through web3.py.
Constructed once by the application container and closed on shutdown.
"""
import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3Exception

from tokenops.blockchain.abi import ACCESS_CONTROL_ABI, TOKEN_ABI
from tokenops.blockchain.networks import NetworkProfile, network_profiles
from tokenops.blockchain.signers import SignerRegistry, checksum
from tokenops.blockchain.units import format_ether
from tokenops.config import Settings, get_settings
from tokenops.errors import ChainError, NotFoundError, ValidationError
from tokenops.utils.observability import log_chain_call, logger


@dataclass
class Receipt:
    """The fields of a transaction receipt the ledger keeps."""
    tx_hash: str
    status: int
    block_number: Optional[int]
    gas_used: Optional[int]
    gas_price: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, receipt: Any) -> "Receipt":
        tx_hash = receipt["transactionHash"]
        return cls(
            tx_hash=_hex(tx_hash),
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            gas_price=receipt.get("effectiveGasPrice"),
        )


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        text = value.hex()
    else:
        text = str(value)
    return text if text.startswith("0x") else f"0x{text}"


class BlockchainClient:
    """
    web3.py wrapper with one AsyncWeb3 instance per network profile.

    Responsibilities:
    1. Reads: native and token balances, transactions, blocks, roles
    2. Writes: build, sign and submit contract transactions
    3. Receipts: wait and normalize
    4. Caching: token decimals per (network, token) with a TTL

    Usage:
        client = BlockchainClient(settings, signers)
        await client.connect()
        balance = await client.get_balance("0x...", "testnet")
        await client.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        signers: Optional[SignerRegistry] = None,
        profiles: Optional[Dict[str, NetworkProfile]] = None,
    ):
        self.settings = settings or get_settings()
        self.signers = signers or SignerRegistry()
        self.profiles = profiles or network_profiles(self.settings)
        self._web3: Dict[str, AsyncWeb3] = {}
        self._decimals: Dict[tuple, tuple[int, float]] = {}
        self._nonce_locks: Dict[tuple, asyncio.Lock] = {}

    # ============================================
    # LIFECYCLE
    # ============================================

    async def connect(self) -> None:
        for name, profile in self.profiles.items():
            if name not in self._web3:
                self._web3[name] = AsyncWeb3(self._provider(profile))
        logger.info(f"Blockchain client ready for networks: {', '.join(self._web3)}")

    def _provider(self, profile: NetworkProfile) -> AsyncHTTPProvider:
        timeout = aiohttp.ClientTimeout(total=self.settings.rpc_request_timeout_seconds)
        return AsyncHTTPProvider(profile.rpc_url, request_kwargs={"timeout": timeout})

    async def close(self) -> None:
        for name, w3 in self._web3.items():
            try:
                await w3.provider.disconnect()
            except Exception as e:
                logger.warning(f"Error closing RPC provider for {name}: {e}")
        self._web3.clear()

    def web3(self, network: str) -> AsyncWeb3:
        if network not in self.profiles:
            raise ValidationError(f"Unknown network: {network}")
        if network not in self._web3:
            raise ChainError(f"Blockchain client not connected for {network}")
        return self._web3[network]

    def contract(self, network: str, address: str, abi: Sequence[dict]):
        return self.web3(network).eth.contract(address=checksum(address, "contract address"), abi=list(abi))

    @asynccontextmanager
    async def _rpc(self, network: str, method: str, **context):
        """Translate web3/transport failures into ChainError and log the call."""
        started = time.perf_counter()
        try:
            yield
        except (ValidationError, NotFoundError, ChainError):
            raise
        except (Web3Exception, ValueError, OSError, asyncio.TimeoutError) as e:
            duration_ms = (time.perf_counter() - started) * 1000
            log_chain_call(network, method, duration_ms, success=False, error=str(e), **context)
            raise ChainError(f"{method} failed on {network}: {e}") from e

    # ============================================
    # READS
    # ============================================

    async def get_balance(self, address: str, network: str) -> Dict[str, str]:
        """Native balance as a wei string plus its ether rendering."""
        account = checksum(address)
        async with self._rpc(network, "eth_getBalance"):
            wei = await self.web3(network).eth.get_balance(account)
        return {
            "address": account,
            "network": network,
            "balance_wei": str(wei),
            "balance": format_ether(wei),
        }

    async def get_transaction(self, tx_hash: str, network: str) -> Dict[str, Any]:
        eth = self.web3(network).eth
        try:
            async with self._rpc(network, "eth_getTransactionByHash"):
                tx = await eth.get_transaction(tx_hash)
        except ChainError as e:
            if isinstance(e.__cause__, TransactionNotFound):
                raise NotFoundError(f"Transaction {tx_hash} not found on {network}") from e
            raise

        receipt = None
        try:
            async with self._rpc(network, "eth_getTransactionReceipt"):
                receipt = Receipt.from_web3(await eth.get_transaction_receipt(tx_hash))
        except ChainError as e:
            if not isinstance(e.__cause__, TransactionNotFound):
                raise

        value = tx.get("value", 0)
        return {
            "hash": _hex(tx["hash"]),
            "network": network,
            "from": tx.get("from"),
            "to": tx.get("to"),
            "value_wei": str(value),
            "value": format_ether(value),
            "nonce": tx.get("nonce"),
            "block_number": tx.get("blockNumber"),
            "gas_limit": str(tx.get("gas", 0)),
            "gas_price": str(tx.get("gasPrice", 0)),
            "status": None if receipt is None else ("confirmed" if receipt.succeeded else "failed"),
            "gas_used": None if receipt is None else receipt.gas_used,
        }

    async def get_block(self, network: str, block: Any = "latest") -> Dict[str, Any]:
        async with self._rpc(network, "eth_getBlockByNumber"):
            data = await self.web3(network).eth.get_block(block)
        return {
            "number": data["number"],
            "hash": _hex(data["hash"]),
            "timestamp": data["timestamp"],
            "gas_limit": str(data["gasLimit"]),
            "gas_used": str(data["gasUsed"]),
            "base_fee_per_gas": str(data.get("baseFeePerGas", 0)),
            "transactions": len(data.get("transactions", [])),
        }

    async def get_network_info(self, network: str) -> Dict[str, Any]:
        eth = self.web3(network).eth
        async with self._rpc(network, "network_info"):
            chain_id = await eth.chain_id
            block_number = await eth.block_number
            gas_price = await eth.gas_price
        return {
            "network": network,
            "chain_id": chain_id,
            "expected_chain_id": self.profiles[network].chain_id,
            "block_number": block_number,
            "gas_price_wei": str(gas_price),
            "gas_price_gwei": str(AsyncWeb3.from_wei(gas_price, "gwei")),
        }

    async def call(
        self,
        network: str,
        address: str,
        abi: Sequence[dict],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        """Read-only contract call."""
        contract = self.contract(network, address, abi)
        async with self._rpc(network, function_name, contract=address):
            return await contract.functions[function_name](*args).call()

    async def token_decimals(self, network: str, token_address: str) -> int:
        """``decimals()`` of a token, cached per (network, token) for the configured TTL."""
        key = (network, token_address.lower())
        cached = self._decimals.get(key)
        now = time.monotonic()
        if cached and cached[1] > now:
            return cached[0]

        decimals = int(await self.call(network, token_address, TOKEN_ABI, "decimals"))
        self._decimals[key] = (decimals, now + self.settings.decimals_cache_ttl_seconds)
        return decimals

    async def token_balance(self, network: str, token_address: str, holder: str) -> int:
        return int(await self.call(network, token_address, TOKEN_ABI, "balanceOf", [checksum(holder)]))

    async def has_role(self, network: str, contract_address: str, role: bytes, account: str) -> bool:
        return bool(await self.call(network, contract_address, ACCESS_CONTROL_ABI, "hasRole", [role, checksum(account)]))

    # ============================================
    # WRITES
    # ============================================

    async def _fee_params(self, network: str) -> Dict[str, int]:
        eth = self.web3(network).eth
        latest = await eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is None:
            return {"gasPrice": await eth.gas_price}
        priority = AsyncWeb3.to_wei(self.settings.priority_fee_gwei, "gwei")
        return {"maxFeePerGas": base_fee * 2 + priority, "maxPriorityFeePerGas": priority}

    async def estimate_write_cost(
        self,
        network: str,
        contract_address: str,
        abi: Sequence[dict],
        function_name: str,
        args: Sequence[Any],
        sender: str,
    ) -> int:
        """Upper bound in wei of what the sender pays for this write."""
        contract = self.contract(network, contract_address, abi)
        async with self._rpc(network, f"estimate:{function_name}", contract=contract_address):
            gas = await contract.functions[function_name](*args).estimate_gas({"from": checksum(sender)})
            fees = await self._fee_params(network)
        gas_limit = int(gas * self.settings.gas_limit_multiplier)
        price = fees.get("maxFeePerGas", fees.get("gasPrice", 0))
        return gas_limit * price

    async def submit_contract_transaction(
        self,
        network: str,
        contract_address: str,
        abi: Sequence[dict],
        function_name: str,
        args: Sequence[Any],
        signer_address: str,
    ) -> str:
        """
        Build, sign and broadcast a contract write.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            SignerKeyMissingError: If no key is configured for the signer
            ChainError: If estimation or broadcast fails
        """
        account = self.signers.get(signer_address)
        contract = self.contract(network, contract_address, abi)
        fn = contract.functions[function_name](*args)
        eth = self.web3(network).eth
        started = time.perf_counter()

        # One in-flight nonce per signer and network
        lock = self._nonce_locks.setdefault((network, account.address), asyncio.Lock())
        async with lock:
            async with self._rpc(network, function_name, contract=contract_address, signer=account.address):
                params: Dict[str, Any] = {
                    "from": account.address,
                    "chainId": self.profiles[network].chain_id,
                    "nonce": await eth.get_transaction_count(account.address, "pending"),
                    **await self._fee_params(network),
                }
                try:
                    gas = await fn.estimate_gas({"from": account.address})
                    params["gas"] = int(gas * self.settings.gas_limit_multiplier)
                except Web3Exception as e:
                    logger.warning(
                        f"Gas estimation failed for {function_name} ({e}), using default limit"
                    )
                    params["gas"] = self.settings.default_gas_limit

                tx = await fn.build_transaction(params)
                signed = account.sign_transaction(tx)
                tx_hash = await eth.send_raw_transaction(signed.raw_transaction)

        log_chain_call(
            network,
            function_name,
            (time.perf_counter() - started) * 1000,
            contract=contract_address,
            signer=account.address,
            tx_hash=_hex(tx_hash),
        )
        return _hex(tx_hash)

    async def send_native(self, network: str, signer_address: str, to: str, value_wei: int) -> str:
        """Plain coin transfer from a managed wallet."""
        account = self.signers.get(signer_address)
        eth = self.web3(network).eth
        lock = self._nonce_locks.setdefault((network, account.address), asyncio.Lock())
        async with lock:
            async with self._rpc(network, "eth_sendRawTransaction", signer=account.address):
                tx = {
                    "from": account.address,
                    "to": checksum(to, "recipient"),
                    "value": value_wei,
                    "gas": 21_000,
                    "chainId": self.profiles[network].chain_id,
                    "nonce": await eth.get_transaction_count(account.address, "pending"),
                    **await self._fee_params(network),
                }
                signed = account.sign_transaction(tx)
                tx_hash = await eth.send_raw_transaction(signed.raw_transaction)
        return _hex(tx_hash)

    async def wait_for_receipt(self, network: str, tx_hash: str, timeout: Optional[float] = None) -> Receipt:
        timeout = timeout or self.settings.receipt_timeout_seconds
        try:
            async with self._rpc(network, "wait_for_receipt", tx_hash=tx_hash):
                receipt = await self.web3(network).eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except ChainError as e:
            if isinstance(e.__cause__, TimeExhausted):
                raise ChainError(
                    f"Receipt for {tx_hash} not available after {timeout}s",
                    hint="The transaction may still be mined; the retry will wait on the same hash.",
                ) from e
            raise
        return Receipt.from_web3(receipt)

    async def ping(self, network: str) -> bool:
        async with self._rpc(network, "eth_blockNumber"):
            await self.web3(network).eth.block_number
        return True

    @property
    def networks(self) -> List[str]:
        return list(self.profiles)
