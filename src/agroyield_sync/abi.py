"""Contract ABIs for the AgroYield ledger contracts (subset used by the client)."""

from typing import Any


def _param(name: str, type_: str, components: list[dict[str, Any]] | None = None) -> dict:
    param: dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if components is not None:
        param["components"] = components
    return param


def _function(
    name: str,
    inputs: list[dict[str, Any]],
    outputs: list[dict[str, Any]],
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


_USER_PROFILE = [
    _param("isRegistered", "bool"),
    _param("name", "string"),
    _param("profileIPFSHash", "string"),
    _param("registeredAt", "uint256"),
    _param("projectCount", "uint256"),
    _param("totalInvested", "uint256"),
    _param("totalRaised", "uint256"),
]

_PROJECT = [
    _param("id", "uint256"),
    _param("farmer", "address"),
    _param("title", "string"),
    _param("description", "string"),
    _param("imageIPFSHash", "string"),
    _param("documentsIPFSHash", "string"),
    _param("targetAmountUSDC", "uint256"),
    _param("currentAmountUSDC", "uint256"),
    _param("durationDays", "uint256"),
    _param("createdAt", "uint256"),
    _param("deadline", "uint256"),
    _param("status", "uint8"),
    _param("location", "string"),
    _param("category", "string"),
    _param("investorCount", "uint256"),
    _param("fundsReleased", "bool"),
]

_INVESTOR_DATA = [
    _param("totalInvested", "uint256"),
    _param("activeInvestments", "uint256"),
    _param("claimedReturns", "uint256"),
    _param("pendingAmount", "uint256"),
    _param("projectIds", "uint256[]"),
]

PROJECT_FACTORY_ABI: list[dict[str, Any]] = [
    _function("isUserRegistered", [_param("user", "address")], [_param("", "bool")]),
    _function(
        "getUserProfile",
        [_param("user", "address")],
        [_param("", "tuple", _USER_PROFILE)],
    ),
    _function(
        "registerUser",
        [_param("name", "string"), _param("profileIPFSHash", "string")],
        [],
        "nonpayable",
    ),
    _function(
        "createProject",
        [
            _param("title", "string"),
            _param("description", "string"),
            _param("imageIPFSHash", "string"),
            _param("documentsIPFSHash", "string"),
            _param("targetAmountUSDC", "uint256"),
            _param("durationDays", "uint256"),
            _param("location", "string"),
            _param("category", "string"),
        ],
        [_param("", "uint256")],
        "nonpayable",
    ),
    _function("getProject", [_param("projectId", "uint256")], [_param("", "tuple", _PROJECT)]),
    _function("getAllProjects", [], [_param("", "tuple[]", _PROJECT)]),
    _function(
        "getPlatformStats",
        [],
        [
            _param("totalProjects", "uint256"),
            _param("totalUsers", "uint256"),
            _param("totalInvestments", "uint256"),
            _param("totalFunding", "uint256"),
        ],
    ),
    {
        "type": "event",
        "name": "ProjectCreated",
        "anonymous": False,
        "inputs": [
            {**_param("projectId", "uint256"), "indexed": True},
            {**_param("farmer", "address"), "indexed": True},
            {**_param("title", "string"), "indexed": False},
            {**_param("targetAmountUSDC", "uint256"), "indexed": False},
        ],
    },
]

INVESTMENT_MANAGER_ABI: list[dict[str, Any]] = [
    _function(
        "investInProject",
        [_param("projectId", "uint256"), _param("amount", "uint256")],
        [],
        "nonpayable",
    ),
    _function(
        "getInvestorData",
        [_param("investor", "address")],
        [_param("", "tuple", _INVESTOR_DATA)],
    ),
]

ERC20_ABI: list[dict[str, Any]] = [
    _function("balanceOf", [_param("account", "address")], [_param("", "uint256")]),
    _function(
        "allowance",
        [_param("owner", "address"), _param("spender", "address")],
        [_param("", "uint256")],
    ),
    _function(
        "approve",
        [_param("spender", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
        "nonpayable",
    ),
    _function(
        "transfer",
        [_param("to", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
        "nonpayable",
    ),
    _function(
        "transferFrom",
        [_param("from", "address"), _param("to", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
        "nonpayable",
    ),
    _function("decimals", [], [_param("", "uint8")]),
]
