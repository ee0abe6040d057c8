"""Error taxonomy shared by the command services and event handlers.

Every error is a ``ValueError`` so callers that only care about "the command
was rejected" can keep catching ``ValueError``; the HTTP layer maps the
subclasses to status codes.
"""


class NotFoundError(ValueError):
    """A referenced item, order, vendor or location does not exist."""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found.")
        else:
            super().__init__(f"{entity} {entity_id} not found.")


class ValidationFailure(ValueError):
    """Input rejected before any inventory mutation."""


class OrderStateError(ValidationFailure):
    """The order's status does not allow the requested transition."""


class InsufficientInventoryError(ValidationFailure):
    def __init__(self, item_name: str, requested: int, available: int):
        self.item_name = item_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient inventory for {item_name} (requested {requested}, available {available})."
        )


class CostLayerShortfallError(ValidationFailure):
    def __init__(self, item_id: int, shortfall: int):
        self.item_id = item_id
        self.shortfall = shortfall
        super().__init__(f"Insufficient cost layers for item {item_id}. Needed {shortfall} more units.")


class ImmutableEventError(ValueError):
    """Event store rows are append-only."""
