"""
Account-related models for Polymarket client.

Immutable data structures for balances, allowances and trade history.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class AssetType(Enum):
    """Asset a balance query refers to."""
    COLLATERAL = "COLLATERAL"  # USDC
    CONDITIONAL = "CONDITIONAL"  # outcome tokens, needs a token id


@dataclass(frozen=True)
class BalanceAllowance:
    """
    Balance and exchange allowances of one asset.

    Attributes:
        asset_type: Collateral or conditional token
        token_id: Outcome token id for conditional balances
        balance: Balance in whole units (USDC or shares)
        allowances: Allowance per spender contract, in whole units
    """
    asset_type: AssetType
    token_id: Optional[str]
    balance: Decimal
    allowances: Dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class Trade:
    """One trade of the authenticated account."""
    trade_id: str
    market: str
    asset_id: str
    side: str
    price: Decimal
    size: Decimal
    status: str
    match_time: Optional[int] = None
    taker_order_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
