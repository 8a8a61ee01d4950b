"""
Blockchain Layer
web3.py client, signer and gas payer resolution, role management and the
block explorer client.
"""
from tokenops.blockchain.client import BlockchainClient, Receipt
from tokenops.blockchain.explorer import ExplorerClient
from tokenops.blockchain.roles import RoleManager, role_hash
from tokenops.blockchain.signers import ContractRegistry, SignerRegistry, checksum
from tokenops.blockchain.units import format_ether, from_base_units, parse_ether, to_base_units

__all__ = [
    "BlockchainClient",
    "Receipt",
    "ExplorerClient",
    "RoleManager",
    "role_hash",
    "ContractRegistry",
    "SignerRegistry",
    "checksum",
    "format_ether",
    "from_base_units",
    "parse_ether",
    "to_base_units",
]
