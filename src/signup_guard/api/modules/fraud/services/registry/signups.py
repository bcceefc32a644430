import datetime

from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWorkFactory


def email_local_part(email: str) -> str:
    return email.strip().lower().split("@", 1)[0]


class SignupLedger:
    """Read side of the confirmed-signup ledger used by velocity checks."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def count_from_address(self, ip_address: str, window_seconds: int) -> int:
        since = utcnow() - datetime.timedelta(seconds=window_seconds)
        async with self._uow_factory() as uow:
            return await uow.signups.count_by_ip_since(ip_address, since)

    async def count_with_referral(self, referral_code: str, window_seconds: int) -> int:
        since = utcnow() - datetime.timedelta(seconds=window_seconds)
        async with self._uow_factory() as uow:
            return await uow.signups.count_by_referral_since(referral_code, since)

    async def count_similar_emails(self, email: str, prefix_length: int) -> int:
        prefix = email_local_part(email)[:prefix_length]
        if not prefix:
            return 0
        async with self._uow_factory() as uow:
            return await uow.signups.count_by_email_fragment(
                prefix, exclude_email=email.strip().lower()
            )


__all__ = ("SignupLedger", "email_local_part")
