"""Exceptions raised at the persistence and export boundary.

The engine itself reports conflicts and warnings as values. These errors are
raised only when a caller tries to save or export a proposal that must not
leave the calculator in its current state.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List


class ProposalRejected(Exception):
    """Base class for proposals refused by the save/export gate."""


class FlowExceedsLimitError(ProposalRejected):
    def __init__(self, exceeded_amount: Decimal) -> None:
        self.exceeded_amount = exceeded_amount
        super().__init__(
            f"Payments exceed the property value by {exceeded_amount:.2f}; "
            "adjust the flow before saving or exporting"
        )


class IncompleteProposalError(ProposalRejected):
    def __init__(self, problems: List[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))
