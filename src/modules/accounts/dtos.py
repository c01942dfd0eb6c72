"""Identity DTOs.

``ActorDTO`` is the service-layer view of whoever performs an operation.
It is built once per request from ``request.user`` so services never
touch the auth framework.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class ActorDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str = ""
    name: str = ""
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: Any) -> ActorDTO:
        full_name = user.get_full_name() if hasattr(user, "get_full_name") else ""
        return cls(
            user_id=user.pk,
            email=user.email or "",
            name=full_name or user.get_username(),
            is_admin=bool(user.is_staff),
        )
