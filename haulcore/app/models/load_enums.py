"""
Load-related enumerations.
"""

import enum


class LoadStatus(str, enum.Enum):
    """Load status enumeration."""
    PENDING = "pending"  # Posted/assigned, not yet accepted by the driver
    ACCEPTED = "accepted"
    LOADING = "loading"
    LOADED = "loaded"  # Pickup phase done
    IN_TRANSIT = "in_transit"  # Delivery phase started
    DELIVERED = "delivered"
    STORAGE_COMPLETED = "storage_completed"  # Dropped into storage instead of delivered
    CANCELLED = "cancelled"


# Statuses in which a load counts as picked up for delivery gating
DELIVERY_PHASE_STATUSES = frozenset({
    LoadStatus.LOADED,
    LoadStatus.IN_TRANSIT,
    LoadStatus.DELIVERED,
    LoadStatus.STORAGE_COMPLETED,
})

# Statuses that satisfy a trip's completion gate and the delivery-order blocker search
DELIVERED_STATUSES = frozenset({
    LoadStatus.DELIVERED,
    LoadStatus.STORAGE_COMPLETED,
})

TERMINAL_LOAD_STATUSES = frozenset({
    LoadStatus.DELIVERED,
    LoadStatus.STORAGE_COMPLETED,
    LoadStatus.CANCELLED,
})


class LoadSource(str, enum.Enum):
    """Where the load came from."""
    OWN = "own"
    PARTNER = "partner"
    MARKETPLACE = "marketplace"


class PostingType(str, enum.Enum):
    """Pickup postings need the pickup-completion form before delivery."""
    PICKUP = "pickup"
    LOAD = "load"
