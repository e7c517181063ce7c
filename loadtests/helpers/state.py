"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own BuyerState. ContentionState is the
one exception: a single unit shared by the whole contention swarm.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class BuyerState:
    """Tracks state for a single simulated buyer's checkout."""

    buyer_id: str
    unit_ids: list[str] = field(default_factory=list)
    checkout_id: str | None = None
    order_id: str | None = None
    checkout_state: str | None = None


@dataclass
class ContentionState:
    """The unit a whole swarm of buyers competes for."""

    unit_id: str | None = None
    initial_quantity: int = 0
