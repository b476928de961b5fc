from __future__ import annotations

from dataclasses import dataclass

from fulfillment.domain.common.errors import ValidationError


@dataclass(frozen=True)
class Money:
    amount_cents: int
    currency: str

    def __post_init__(self) -> None:
        if self.amount_cents < 0:
            raise ValidationError("amount_cents must be >= 0")
        if len(self.currency) != 3 or not self.currency.isalpha() or not self.currency.isupper():
            raise ValidationError("currency must be a 3-letter uppercase code")

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(amount_cents=0, currency=currency)

    def times(self, quantity: int) -> Money:
        return Money(amount_cents=self.amount_cents * quantity, currency=self.currency)

    def plus(self, other: Money) -> Money:
        self._ensure_same_currency(other)
        return Money(amount_cents=self.amount_cents + other.amount_cents, currency=self.currency)

    def minus(self, other: Money) -> Money:
        self._ensure_same_currency(other)
        return Money(amount_cents=self.amount_cents - other.amount_cents, currency=self.currency)

    def _ensure_same_currency(self, other: Money) -> None:
        if other.currency != self.currency:
            raise ValidationError(
                f"currency mismatch: {self.currency} != {other.currency}",
            )
