"""
Ownership guards for listing and join request mutations.
"""

from typing import Iterable
from ridepool.app.core.dependencies import Identity
from ridepool.app.core.exceptions import InsufficientPermissionsError


def verify_ownership(resource_owner_id: int, identity: Identity) -> bool:
    """
    Verify that the caller owns the resource.

    Args:
        resource_owner_id: The owning account ID of the resource being accessed
        identity: The caller

    Returns:
        True if the caller owns the resource, False otherwise
    """
    return identity is not None and identity.account_id == resource_owner_id


class OwnershipGuard:
    """
    Class-based ownership guard.

    Usage:
        ownership_guard = OwnershipGuard()
        ownership_guard.enforce(offer.owner_account_id, identity, "offer")
    """

    def enforce(
        self,
        resource_owner_id: int,
        identity: Identity,
        resource_name: str = "resource"
    ):
        """
        Enforce ownership validation.

        Raises:
            InsufficientPermissionsError: 403 if the caller is not the owner
        """
        if not verify_ownership(resource_owner_id, identity):
            raise InsufficientPermissionsError(
                f"Access denied. You do not have permission to modify this {resource_name}.",
                details={"resource": resource_name}
            )

    def enforce_any(
        self,
        resource_owner_ids: Iterable[int],
        identity: Identity,
        resource_name: str = "resource"
    ):
        """Allow the action if the caller is any one of several owners."""
        if not any(verify_ownership(owner_id, identity) for owner_id in resource_owner_ids):
            raise InsufficientPermissionsError(
                f"Access denied. You are not a party to this {resource_name}.",
                details={"resource": resource_name}
            )


ownership_guard = OwnershipGuard()
