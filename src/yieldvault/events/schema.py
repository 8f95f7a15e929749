from __future__ import annotations

from typing import List, Literal, Optional, Union
from pydantic import BaseModel


# ---- Base + envelope ----

class BaseEvent(BaseModel):
    event_type: str
    ts: int
    emitter: str  # address of the component that emitted the event
    tags: List[str] = []


class EventEnvelope(BaseModel):
    schema_version: str = "v1"
    correlation_id: str  # one per committed transaction
    sequence: int = 0
    event: BaseEvent


# ---- Ledger events ----

class Deposit(BaseEvent):
    event_type: Literal["deposit"] = "deposit"
    sender: str
    owner: str
    assets: int
    shares: int


class Withdraw(BaseEvent):
    event_type: Literal["withdraw"] = "withdraw"
    sender: str
    receiver: str
    owner: str
    assets: int
    shares: int
    fee: int = 0


class SharesTransferred(BaseEvent):
    event_type: Literal["shares_transferred"] = "shares_transferred"
    sender: str
    receiver: str
    shares: int


class FeesUpdated(BaseEvent):
    event_type: Literal["fees_updated"] = "fees_updated"
    withdrawal_fee_bps: int
    performance_fee_bps: int


class DepositLimitUpdated(BaseEvent):
    event_type: Literal["deposit_limit_updated"] = "deposit_limit_updated"
    deposit_limit: int


class FeeRecipientUpdated(BaseEvent):
    event_type: Literal["fee_recipient_updated"] = "fee_recipient_updated"
    fee_recipient: str


class StrategyManagerUpdated(BaseEvent):
    event_type: Literal["strategy_manager_updated"] = "strategy_manager_updated"
    strategy_manager: str


class Paused(BaseEvent):
    event_type: Literal["paused"] = "paused"
    account: str


class Unpaused(BaseEvent):
    event_type: Literal["unpaused"] = "unpaused"
    account: str


class EmergencyWithdrawn(BaseEvent):
    event_type: Literal["emergency_withdrawn"] = "emergency_withdrawn"
    recovered: int
    failed: List[str] = []


# ---- Orchestrator events ----

class StrategyAdded(BaseEvent):
    event_type: Literal["strategy_added"] = "strategy_added"
    strategy: str
    allocation_bps: int


class StrategyRemoved(BaseEvent):
    event_type: Literal["strategy_removed"] = "strategy_removed"
    strategy: str
    recovered: int


class AllocationUpdated(BaseEvent):
    event_type: Literal["allocation_updated"] = "allocation_updated"
    strategy: str
    old_bps: int
    new_bps: int


class FundsDeployed(BaseEvent):
    event_type: Literal["funds_deployed"] = "funds_deployed"
    amount: int
    deployed: int


class FundsRecalled(BaseEvent):
    event_type: Literal["funds_recalled"] = "funds_recalled"
    requested: int
    withdrawn: int


class StrategyHarvested(BaseEvent):
    event_type: Literal["strategy_harvested"] = "strategy_harvested"
    strategy: str
    profit: int
    loss: int = 0
    performance_fee: int = 0


class Rebalanced(BaseEvent):
    event_type: Literal["rebalanced"] = "rebalanced"
    recalled: int
    redeployed: int


class StrategyCallFailed(BaseEvent):
    event_type: Literal["strategy_call_failed"] = "strategy_call_failed"
    strategy: str
    operation: str
    error: Optional[str] = None


AnyEvent = Union[
    Deposit,
    Withdraw,
    SharesTransferred,
    FeesUpdated,
    DepositLimitUpdated,
    FeeRecipientUpdated,
    StrategyManagerUpdated,
    Paused,
    Unpaused,
    EmergencyWithdrawn,
    StrategyAdded,
    StrategyRemoved,
    AllocationUpdated,
    FundsDeployed,
    FundsRecalled,
    StrategyHarvested,
    Rebalanced,
    StrategyCallFailed,
]
