"""percolator/execution/signer.py

Signing boundary.

The package never holds keys. Callers supply a Signer that turns a draft
into a signed payload (a serialized transaction, a wallet-adapter request,
an HSM call); this module only fixes the shape of that seam.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

from percolator.execution.drafts import OperationDraft
from percolator.execution.saga import OrderIntent
from percolator.errors import ValidationError


class Signer(ABC):
    """External signing capability supplied by the caller."""

    @abstractmethod
    def sign(self, draft: OperationDraft) -> bytes:
        """Return the signed payload for one draft."""
        ...


def sign_drafts(drafts: Sequence[OperationDraft], signer: Signer) -> List[bytes]:
    """Sign drafts in order. Signer errors propagate unchanged."""
    return [signer.sign(draft) for draft in drafts]


def sign_intent(intent: OrderIntent, signer: Signer) -> List[bytes]:
    """
    Sign every draft of an order intent, in submission order.

    A failed or compensated intent is never signed; discarding its drafts
    costs nothing because no on-chain state was touched.

    Raises:
        ValidationError: If the intent did not reach COMMITTED
    """
    if not intent.success:
        raise ValidationError(
            "only a committed order intent can be signed",
            {"phase": intent.phase.value},
        )
    return sign_drafts(intent.drafts, signer)
