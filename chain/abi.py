# app/chain/abi.py
"""
Loads contract ABIs from Foundry build artifacts in abi/.
Falls back to the minimal built-in ABI when the artifact is missing,
so the gateway still boots against a bare checkout.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)

_ABI_DIR = Path(__file__).resolve().parents[1] / "abi"


def load_abi(contract_name: str, abi_dir: Path = _ABI_DIR) -> Optional[List[Dict[str, Any]]]:
    """
    Load ABI for a contract. Accepts either a bare ABI array or a
    standard Foundry artifact ({"abi": [...]}). Returns None when the
    artifact is absent or unreadable.
    """
    path = abi_dir / f"{contract_name}.json"
    if not path.exists():
        return None
    try:
        with path.open() as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error("Failed to load ABI for %s: %s", contract_name, e)
        return None

    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return data["abi"]
    logger.error("Unrecognized ABI shape in %s", path)
    return None


def has_function(abi: List[Dict[str, Any]], name: str) -> bool:
    return any(e.get("type") == "function" and e.get("name") == name for e in abi)


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


_ORBITAL_POOL_FALLBACK = [
    _fn("tokenCount", [], [("", "uint256")]),
    _fn("tokens", [("i", "uint256")], [("", "address")]),
    _fn("totalReserves", [], [("", "uint256[]")]),
    _fn("getAmountOut", [("tokenIn", "address"), ("tokenOut", "address"), ("amountIn", "uint256")],
        [("", "uint256")]),
    _fn("getSpotPrice", [("tokenA", "uint256"), ("tokenB", "uint256")], [("", "uint256")]),
    _fn("getTickEfficiency", [("idx", "uint256")], [("", "uint256")]),
    _fn("getTickInfo", [("idx", "uint256")], [
        ("radius", "uint256"),
        ("planeConstant", "uint256"),
        ("isInterior", "bool"),
        ("owner", "address"),
        ("reserves", "uint256[]"),
    ]),
    _fn("getUserTicks", [("user", "address")], [("", "uint256[]")]),
    _fn("swap", [
        ("tokenIn", "address"),
        ("tokenOut", "address"),
        ("amountIn", "uint256"),
        ("minAmountOut", "uint256"),
    ], [
        ("inputAmountGross", "uint256"),
        ("inputAmountNet", "uint256"),
        ("outputAmount", "uint256"),
        ("effectivePrice", "uint256"),
        ("segments", "uint256"),
        ("success", "bool"),
        ("message", "string"),
    ], "nonpayable"),
    _fn("addLiquidity", [("amounts", "uint256[]"), ("planeConstant", "uint256")],
        [("idx", "uint256")], "nonpayable"),
    _fn("removeLiquidity", [("idx", "uint256"), ("fraction", "uint256")],
        [], "nonpayable"),
]

_SESSION_MANAGER_FALLBACK = [
    _fn("remaining", [("sessionId", "bytes32")], [("", "uint256")]),
]

ERC20_METADATA_ABI = [
    _fn("symbol", [], [("", "string")]),
    _fn("decimals", [], [("", "uint8")]),
]

ORBITAL_POOL_ABI = load_abi("OrbitalPool") or _ORBITAL_POOL_FALLBACK
SESSION_MANAGER_ABI = load_abi("X402SessionManager") or _SESSION_MANAGER_FALLBACK
