"""percolator/errors.py

Typed errors for order preparation and canonical reject reasons.

Low-level helpers raise these; public builders catch them and hand them
back as the error half of a (value, error) tuple so nothing throws across
the package boundary.
"""

from typing import Any, Dict, Optional


# Warmup guard reject reasons
WARMUP_SHORTS_DISABLED = "warmup_shorts_disabled"
WARMUP_SHORT_LEVERAGE_CAP = "warmup_short_leverage_cap"
ROUTE_NOT_FOUND = "route_not_found"
ROUTE_READ_FAILED = "route_read_failed"

# Capability reject reasons
CAP_EXPIRED = "cap_expired"
CAP_DEBIT_EXCEEDS_REMAINING = "cap_debit_exceeds_remaining"

# Price checks
PRICE_OUTSIDE_BANDS = "price_outside_bands"


class PercolatorError(Exception):
    """Base error with a human-readable reason and structured details."""

    code = "PERCOLATOR_ERROR"

    def __init__(
        self,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
        step: Optional[str] = None,
    ):
        self.reason = reason
        self.details = details or {}
        self.step = step
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"{self.code}: {self.reason}"
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg += f" [{details_str}]"
        return msg

    def at_step(self, step: str) -> "PercolatorError":
        """Tag the error with the step that produced it (first tag wins)."""
        if self.step is None:
            self.step = step
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "reason": self.reason,
            "step": self.step,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class ConfigError(PercolatorError):
    code = "CONFIG_ERROR"


class ValidationError(PercolatorError):
    """Malformed or out-of-range parameters."""
    code = "VALIDATION_ERROR"


class NotFoundError(PercolatorError):
    """Account absent on read."""
    code = "NOT_FOUND"


class NetworkError(PercolatorError):
    """Read failed in transport."""
    code = "NETWORK_ERROR"


class ExpiryError(PercolatorError):
    """Cap or hold past its ttl at validation time."""
    code = "EXPIRY_ERROR"


class AuthorizationError(PercolatorError):
    """Debit exceeds the remaining cap, or a warmup guard denied the order."""
    code = "AUTHORIZATION_ERROR"


class DerivationExhausted(PercolatorError):
    """No bump in 0..255 produced an off-curve address."""
    code = "DERIVATION_EXHAUSTED"


class SagaCompensationFailure(PercolatorError):
    """The cancel-hold draft could not be built.

    The hold may stay reserved on-chain until its ttl lapses, so the caller
    has to intervene manually.
    """

    code = "SAGA_COMPENSATION_FAILURE"

    def __init__(
        self,
        reason: str,
        cause: Optional[PercolatorError] = None,
        details: Optional[Dict[str, Any]] = None,
        step: Optional[str] = None,
    ):
        self.cause = cause
        details = dict(details or {})
        if cause is not None:
            details.setdefault("cause", cause.code)
        super().__init__(reason, details=details, step=step)
