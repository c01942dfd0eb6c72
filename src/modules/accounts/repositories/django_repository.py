"""User look-ups over ``django.contrib.auth``.

Administrators are active users with ``is_staff``.  When none of them has
an email address the ``ADMIN_EMAIL`` setting is used instead, so dispute
alerts always have somewhere to go.
"""

from __future__ import annotations

from typing import List, Optional

import structlog
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)


class UserDjangoRepository(IUserRepository):
    def get_by_id(self, id: str):
        User = get_user_model()
        try:
            return User.objects.filter(pk=id).first()
        except (ValueError, TypeError, ValidationError):
            return None

    def save(self, entity):
        entity.save()
        return entity

    def list_admin_emails(self) -> List[str]:
        User = get_user_model()
        emails = list(
            User.objects.filter(is_staff=True, is_active=True)
            .exclude(email="")
            .order_by("pk")
            .values_list("email", flat=True)
        )
        if emails:
            return emails

        fallback: Optional[str] = getattr(settings, "ADMIN_EMAIL", "")
        if fallback:
            logger.info("accounts.admin_email_fallback")
            return [fallback]

        logger.warning("accounts.no_admin_email")
        return []
