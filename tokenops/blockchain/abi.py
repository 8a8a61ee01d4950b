"""
Contract ABIs
Fragments for the functions the operation handlers call.
"""


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


ACCESS_CONTROL_ABI = [
    _fn("hasRole", [("role", "bytes32"), ("account", "address")], [("", "bool")], "view"),
    _fn("grantRole", [("role", "bytes32"), ("account", "address")]),
    _fn("revokeRole", [("role", "bytes32"), ("account", "address")]),
]

TOKEN_ABI = ACCESS_CONTROL_ABI + [
    _fn("name", [], [("", "string")], "view"),
    _fn("symbol", [], [("", "string")], "view"),
    _fn("decimals", [], [("", "uint8")], "view"),
    _fn("totalSupply", [], [("", "uint256")], "view"),
    _fn("balanceOf", [("account", "address")], [("", "uint256")], "view"),
    _fn("mint", [("to", "address"), ("amount", "uint256")]),
    _fn("burnFrom", [("account", "address"), ("amount", "uint256")]),
    _fn("transferFromGasless", [("from", "address"), ("to", "address"), ("amount", "uint256")]),
]

STAKE_ABI = ACCESS_CONTROL_ABI + [
    _fn("stakeToken", [], [("", "address")], "view"),
    _fn("stake", [("user", "address"), ("amount", "uint256"), ("customTimestamp", "uint256")]),
    _fn("unstake", [("user", "address"), ("amount", "uint256")]),
    _fn("claimReward", [("user", "address")]),
    _fn("compound", [("user", "address")]),
    _fn("depositRewards", [("amount", "uint256")]),
    _fn("distributeReward", [("percentageInBasisPoints", "uint256")]),
]
