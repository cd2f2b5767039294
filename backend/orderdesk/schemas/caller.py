"""The authenticated caller, as forwarded by the upstream auth layer."""

import uuid
from dataclasses import dataclass

from orderdesk.models.status import UserRole


@dataclass(frozen=True)
class Caller:
    id: uuid.UUID
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role == UserRole.STAFF.value

    @property
    def is_shipper(self) -> bool:
        return self.role == UserRole.SHIPPER.value
