# app/chain/pool_gateway.py
"""
Read-only pool queries and unsigned calldata builders for OrbitalPool.
The pool is treated as a black box: every number comes from a view call,
nothing is recomputed off-chain. Clients sign and send the calldata.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from web3 import Web3

from .abi import ORBITAL_POOL_ABI, SESSION_MANAGER_ABI, ERC20_METADATA_ABI, has_function

logger = logging.getLogger(__name__)


class PoolUnavailable(Exception):
    """Pool (or session manager) not configured, or method not in the ABI."""


def _to_str_list(values) -> List[str]:
    return [str(int(v)) for v in values] if values is not None else []


class PoolGateway:
    def __init__(
        self,
        w3: Web3,
        pool_address: str = "",
        *,
        session_manager_address: str = "",
        token_addresses: Optional[Mapping[str, str]] = None,
        pool_abi: Sequence[Dict[str, Any]] = ORBITAL_POOL_ABI,
        session_abi: Sequence[Dict[str, Any]] = SESSION_MANAGER_ABI,
    ):
        self.w3 = w3
        self.pool_address = pool_address or None
        self.token_addresses = {k: v for k, v in (token_addresses or {}).items() if v}
        self._pool_abi = list(pool_abi)

        self.pool = None
        if pool_address and self._pool_abi:
            self.pool = w3.eth.contract(
                address=Web3.to_checksum_address(pool_address), abi=self._pool_abi
            )
        else:
            logger.warning("OrbitalPool not initialized (missing address or ABI)")

        self.session_manager = None
        if session_manager_address:
            self.session_manager = w3.eth.contract(
                address=Web3.to_checksum_address(session_manager_address),
                abi=list(session_abi),
            )

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------

    def _require(self, fn_name: Optional[str] = None):
        if self.pool is None:
            raise PoolUnavailable("OrbitalPool contract not initialized")
        if fn_name and not has_function(self._pool_abi, fn_name):
            raise PoolUnavailable(f"{fn_name} not available")
        return self.pool

    def _token_metadata(self, address: str, symbol_hint: str = "UNKNOWN",
                        default_decimals: Optional[int] = None) -> Dict[str, Any]:
        symbol, decimals = symbol_hint, default_decimals
        try:
            erc = self.w3.eth.contract(
                address=Web3.to_checksum_address(address), abi=ERC20_METADATA_ABI
            )
        except Exception as e:
            logger.warning("Bad token address %s: %s", address, e)
            return {"address": address, "symbol": symbol, "decimals": decimals}
        try:
            symbol = erc.functions.symbol().call()
        except Exception as e:
            logger.debug("symbol() failed for %s: %s", address, e)
        try:
            decimals = int(erc.functions.decimals().call())
        except Exception as e:
            logger.debug("decimals() failed for %s: %s", address, e)
        return {"address": address, "symbol": symbol, "decimals": decimals}

    def _encode(self, fn_name: str, args: list) -> Dict[str, str]:
        pool = self._require(fn_name)
        data = pool.encode_abi(fn_name, args=args)
        return {"to": pool.address, "data": data, "value": "0x0"}

    # --------------------------------------------------
    # Views
    # --------------------------------------------------

    def get_pool_info(self) -> Dict[str, Any]:
        if self.pool is None:
            tokens = [
                self._token_metadata(addr, symbol_hint=hint, default_decimals=18)
                for hint, addr in self.token_addresses.items()
            ]
            return {
                "tokens": tokens,
                "pool": self.pool_address,
                "fallback": True,
                "note": "Returned from config fallback (contract not initialized)",
            }

        pool = self._require("tokenCount")
        count = int(pool.functions.tokenCount().call())
        tokens = [
            self._token_metadata(pool.functions.tokens(i).call())
            for i in range(count)
        ]
        return {"tokens": tokens, "pool": self.pool_address}

    def get_reserves(self) -> List[str]:
        pool = self._require()
        if has_function(self._pool_abi, "totalReserves"):
            try:
                return _to_str_list(pool.functions.totalReserves().call())
            except Exception as e:
                logger.warning("totalReserves() failed: %s", e)
        if has_function(self._pool_abi, "getReserves"):
            return _to_str_list(pool.functions.getReserves().call())
        return []

    def get_quote(self, token_in: str, token_out: str, amount_in) -> str:
        pool = self._require("getAmountOut")
        out = pool.functions.getAmountOut(
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            int(amount_in),
        ).call()
        return str(int(out))

    def get_pool_stats(self) -> Dict[str, Any]:
        pool = self._require()
        stats: Dict[str, Any] = {
            "reserves": self.get_reserves(),
            "totalVolume": None,
            "notes": "totalVolume omitted: function not present or reverted",
        }
        if has_function(self._pool_abi, "totalVolume"):
            try:
                stats["totalVolume"] = str(int(pool.functions.totalVolume().call()))
                stats["notes"] = None
            except Exception:
                pass
        return stats

    def get_spot_price(self, token_a_index: int, token_b_index: int) -> str:
        pool = self._require("getSpotPrice")
        return str(int(pool.functions.getSpotPrice(token_a_index, token_b_index).call()))

    def get_tick_efficiency(self, idx: int) -> str:
        pool = self._require("getTickEfficiency")
        return str(int(pool.functions.getTickEfficiency(idx).call()))

    def get_tick_info(self, idx: int) -> Dict[str, Any]:
        pool = self._require("getTickInfo")
        info = pool.functions.getTickInfo(idx).call()
        # (radius, planeConstant, isInterior, owner, reserves[])
        return {
            "radius": str(int(info[0])),
            "planeConstant": str(int(info[1])),
            "isInterior": bool(info[2]),
            "owner": info[3],
            "reserves": _to_str_list(info[4]),
        }

    def get_user_ticks(self, user: str) -> List[str]:
        pool = self._require("getUserTicks")
        return _to_str_list(
            pool.functions.getUserTicks(Web3.to_checksum_address(user)).call()
        )

    def get_session_remaining(self, session_id: str) -> str:
        if self.session_manager is None:
            raise PoolUnavailable("SessionManager not initialized")
        sid = bytes.fromhex(session_id.removeprefix("0x"))
        if len(sid) != 32:
            raise ValueError("sessionId must be 32 bytes")
        return str(int(self.session_manager.functions.remaining(sid).call()))

    # --------------------------------------------------
    # Calldata
    # --------------------------------------------------

    def build_swap_calldata(self, token_in: str, token_out: str,
                            amount_in, min_amount_out) -> Dict[str, str]:
        return self._encode("swap", [
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            int(amount_in),
            int(min_amount_out),
        ])

    def build_add_liquidity_calldata(self, amounts: Sequence, plane_constant=0) -> Dict[str, str]:
        if not isinstance(amounts, (list, tuple)):
            raise ValueError("amounts must be array")
        return self._encode("addLiquidity", [[int(a) for a in amounts], int(plane_constant)])

    def build_remove_liquidity_calldata(self, idx, fraction) -> Dict[str, str]:
        return self._encode("removeLiquidity", [int(idx), int(fraction)])

