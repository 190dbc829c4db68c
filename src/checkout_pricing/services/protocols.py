"""
Collaborator protocols - what the pricing service needs from the cart and
customer-identity systems.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..engine.models import CartSnapshot, CustomerProfile


@runtime_checkable
class CartSource(Protocol):
    """Supplies fresh, read-only cart snapshots."""

    def snapshot(self, cart_id: str) -> CartSnapshot:
        """
        Return the current state of a cart.

        Args:
            cart_id: Cart identifier

        Returns:
            A newly built CartSnapshot
        """
        ...


@runtime_checkable
class CustomerSource(Protocol):
    """Supplies the profile of the customer who owns a cart."""

    def profile_for(self, cart_id: str) -> CustomerProfile | None:
        """
        Return the cart owner's profile.

        Returns:
            CustomerProfile, or None for guests / unknown customers
        """
        ...
