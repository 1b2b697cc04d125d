"""Constants and configuration defaults for the payment-flow calculator.

Engine tuneables live here as module-level constants. Settings that depend
on the deployment (database URL, debounce override, web secret) are read
from the environment by :meth:`Settings.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

# Numeric convenience
ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Rounding tolerance when comparing the schedule total with the property value
LIMIT_TOLERANCE = CENT

# Distance from 100% of the property value, in percentage points, beyond
# which a flow total is flagged as not closing
TOTAL_DEVIATION_WARNING = Decimal("5")

# Installments per component. Larger counts are clamped on input.
MAX_INSTALLMENTS = 600

# Decimal exponent bound for parsed amounts; anything outside reads as zero
MAX_AMOUNT_EXPONENT = 15

# Quiet period before a burst of edits triggers the auto-balance recompute
DEFAULT_DEBOUNCE_SECONDS = 0.1

# Shortest client name accepted when saving or exporting a proposal
MIN_CLIENT_NAME_LENGTH = 3

# Saved proposals kept per user token
DEFAULT_MAX_PROPOSALS_PER_USER = 50

DEFAULT_DATABASE_URL = "sqlite:///payment_flows.sqlite3"


@dataclass
class Settings:
    """Deployment settings for the CLI and web surfaces."""

    database_url: str = DEFAULT_DATABASE_URL
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    secret_key: str = "dev-secret-key"
    max_proposals_per_user: int = DEFAULT_MAX_PROPOSALS_PER_USER

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        env = os.environ if environ is None else environ
        debounce_ms = env.get("PAYMENT_FLOW_DEBOUNCE_MS")
        try:
            debounce = float(debounce_ms) / 1000 if debounce_ms else DEFAULT_DEBOUNCE_SECONDS
        except ValueError:
            debounce = DEFAULT_DEBOUNCE_SECONDS
        max_per_user = env.get("PAYMENT_FLOW_MAX_PROPOSALS")
        return cls(
            database_url=env.get("PAYMENT_FLOW_DATABASE_URL") or DEFAULT_DATABASE_URL,
            debounce_seconds=debounce,
            secret_key=env.get("FLASK_SECRET_KEY", "dev-secret-key"),
            max_proposals_per_user=int(max_per_user) if max_per_user and max_per_user.isdigit() else DEFAULT_MAX_PROPOSALS_PER_USER,
        )
