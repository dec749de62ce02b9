"""Permission criteria used to restrict search results to readable items."""

from __future__ import annotations

from typing import Protocol, Union

from contentsearch.values.criterion import Criterion

PermissionCriterion = Union[Criterion, bool]


class PermissionCriterionResolver(Protocol):
    """Turns the current user's policies into a criterion.

    ``True`` means unrestricted access, ``False`` means no access at all and a
    criterion limits results to what it matches.
    """

    def get_permissions_criterion(
        self, module: str = "content", function: str = "read"
    ) -> PermissionCriterion:
        ...


class UnrestrictedPermissions:
    """Resolver granting read access to everything."""

    def get_permissions_criterion(
        self, module: str = "content", function: str = "read"
    ) -> PermissionCriterion:
        return True


class CriterionPermissions:
    """Resolver returning a fixed criterion, or False to deny all access."""

    def __init__(self, criterion: PermissionCriterion) -> None:
        self.criterion = criterion

    def get_permissions_criterion(
        self, module: str = "content", function: str = "read"
    ) -> PermissionCriterion:
        return self.criterion
