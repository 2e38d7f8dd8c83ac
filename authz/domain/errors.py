from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authz.domain.models import RoleCell


class AuthzError(Exception):
    code = 500


class InvalidArgumentError(AuthzError):
    code = 400


class StorageUnavailableError(AuthzError):
    code = 503


class PartialBatchFailureError(AuthzError):
    """Some cells of a role change batch were written before the store failed.

    ``applied`` cells are persisted and were not rolled back, the ``failed`` cell
    is in an unknown state and ``skipped`` cells were never attempted.
    """

    code = 500

    def __init__(
        self,
        resource_id: str,
        *,
        applied: Sequence[RoleCell],
        failed: RoleCell,
        skipped: Sequence[RoleCell],
    ) -> None:
        self.resource_id = resource_id
        self.applied = list(applied)
        self.failed = failed
        self.skipped = list(skipped)
        super().__init__(
            f"role changes on {resource_id} partially applied: "
            f"{len(self.applied)} applied, 1 unknown ({failed.principal_id}), "
            f"{len(self.skipped)} skipped"
        )
