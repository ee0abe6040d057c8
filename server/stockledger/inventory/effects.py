from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class AppliedEffect:
    """Deltas a handler applied to one item's quantity fields.

    Stored column-by-column on every ItemEvent so that undoing an order is the
    sum of its recorded effects, inverted.
    """

    on_hand: int = 0
    on_order: int = 0
    committed: int = 0
    backordered: int = 0
    cost: Decimal = Decimal("0")

    def __add__(self, other: "AppliedEffect") -> "AppliedEffect":
        if not isinstance(other, AppliedEffect):
            return NotImplemented
        return AppliedEffect(
            on_hand=self.on_hand + other.on_hand,
            on_order=self.on_order + other.on_order,
            committed=self.committed + other.committed,
            backordered=self.backordered + other.backordered,
            cost=self.cost + other.cost,
        )

    def inverted(self) -> "AppliedEffect":
        return AppliedEffect(
            on_hand=-self.on_hand,
            on_order=-self.on_order,
            committed=-self.committed,
            backordered=-self.backordered,
            cost=-self.cost,
        )

    @property
    def is_zero(self) -> bool:
        return not (self.on_hand or self.on_order or self.committed or self.backordered or self.cost)


NO_EFFECT = AppliedEffect()


def sum_effects(effects) -> AppliedEffect:
    total = NO_EFFECT
    for effect in effects:
        total = total + effect
    return total
