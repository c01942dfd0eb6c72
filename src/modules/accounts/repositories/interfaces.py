"""User repository interface (identity collaborator)."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser


class IUserRepository(IRepository["AbstractBaseUser"]):
    @abstractmethod
    def list_admin_emails(self) -> List[str]:
        """Email addresses of every administrator, never empty when configured."""
