"""Buy/wait actions making up a reconstructed investment strategy."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ActionKind(enum.Enum):
    BUY = "b"
    WAIT = "w"


@dataclass(frozen=True)
class InvestmentAction:
    """Either buy a ``length``-month bond or wait ``length`` months, starting at ``start_month``."""

    kind: ActionKind
    start_month: int
    length: int

    def __post_init__(self) -> None:
        if self.start_month < 0:
            raise ValueError("InvestmentAction: month cannot be negative")
        if self.length <= 0:
            raise ValueError("InvestmentAction: tenor / wait length must be positive")

    @classmethod
    def buy(cls, start_month: int, tenor: int) -> "InvestmentAction":
        return cls(ActionKind.BUY, start_month, tenor)

    @classmethod
    def wait(cls, start_month: int, months: int) -> "InvestmentAction":
        return cls(ActionKind.WAIT, start_month, months)

    @property
    def is_buy(self) -> bool:
        return self.kind is ActionKind.BUY

    @property
    def end_month(self) -> int:
        return self.start_month + self.length

    @property
    def token(self) -> str:
        """Compact form, ``b3`` for a 3-month bond or ``w2`` for a 2-month wait."""

        return f"{self.kind.value}{self.length}"

    def describe(self) -> str:
        if self.is_buy:
            return f"Month {self.start_month}: buy {self.length}-month bond"
        if self.length == 1:
            return f"Month {self.start_month}: wait for 1 month"
        return f"Month {self.start_month}: wait for {self.length} months"

    def __str__(self) -> str:
        return self.token


__all__ = ["ActionKind", "InvestmentAction"]
