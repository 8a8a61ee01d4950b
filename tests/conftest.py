import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock

from tokenops.blockchain.client import BlockchainClient, Receipt
from tokenops.blockchain.networks import network_profiles
from tokenops.blockchain.roles import RoleManager
from tokenops.blockchain.signers import ContractRegistry, SignerRegistry
from tokenops.config import Settings
from tokenops.ledger import InMemoryTransactionLedger
from tokenops.message_queue import DEFAULT_TOPOLOGY, InMemoryBroker, JobTracker, QueuePublisher, declare_topology
from tokenops.notifications import NotificationFanout
from tokenops.operations import ContractWriteExecutor
from tokenops.utils.metrics import metrics

# Well-known development key (Hardhat account #0), never funded on a real network
ADMIN_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADMIN = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
USER = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
OTHER_USER = "0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc"
TOKEN = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
STAKE = "0xe7f1725e7734ce288f8367e1bb143e90bb3f0512"

TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def addr():
    """Test wallets and contracts (lowercase hex)."""
    return SimpleNamespace(
        admin=ADMIN,
        admin_key=ADMIN_KEY,
        user=USER,
        other=OTHER_USER,
        token=TOKEN,
        stake=STAKE,
        tx_hash=TX_HASH,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are a process-wide registry."""
    metrics.reset()
    yield


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ledger_backend="memory",
        enable_queue_workers=False,
        queue_retry_base_delay_seconds=0.0,
        fallback_gas_payer=ADMIN,
        jwt_secret="test-secret",
        webhook_secret="whsec-test",
    )


@pytest.fixture
def receipt():
    return Receipt(tx_hash=TX_HASH, status=1, block_number=1234, gas_used=51000, gas_price=2_000_000_000)


@pytest.fixture
def chain(settings, receipt):
    """
    Blockchain client double.

    Defaults: 18 decimals, large token and native balances, role already
    held, every transaction mined with status 1.
    """
    client = MagicMock(spec=BlockchainClient)
    client.settings = settings
    client.signers = SignerRegistry({ADMIN: ADMIN_KEY})
    client.profiles = network_profiles(settings)
    client.networks = list(client.profiles)

    client.token_decimals.return_value = 18
    client.token_balance.return_value = 10**30
    client.has_role.return_value = True
    client.estimate_write_cost.return_value = 10**15
    client.get_balance.return_value = {
        "address": ADMIN,
        "network": "testnet",
        "balance_wei": str(10**18),
        "balance": "1",
    }
    client.submit_contract_transaction.return_value = TX_HASH
    client.send_native.return_value = TX_HASH
    client.wait_for_receipt.return_value = receipt
    client.ping.return_value = True
    return client


@pytest.fixture
def ledger():
    return InMemoryTransactionLedger()


@pytest.fixture
async def broker():
    broker = InMemoryBroker()
    await broker.connect()
    await declare_topology(broker, DEFAULT_TOPOLOGY)
    yield broker
    await broker.close()


@pytest.fixture
def jobs():
    return JobTracker()


@pytest.fixture
def publisher(broker, jobs):
    return QueuePublisher(broker, jobs)


@pytest.fixture
def fanout(publisher):
    return NotificationFanout(publisher)


@pytest.fixture
def contracts():
    return ContractRegistry(fallback_gas_payer=ADMIN)


@pytest.fixture
def executor(chain, ledger, contracts, fanout, broker, settings):
    return ContractWriteExecutor(
        chain, ledger, RoleManager(chain), contracts, fanout=fanout, broker=broker, settings=settings
    )
