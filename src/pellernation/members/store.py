"""Member persistence on top of an injected asyncpg pool."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import asyncpg

from pellernation.db.models import Table
from pellernation.errors import NotFound, StoreError

logger = logging.getLogger(__name__)

# Errors that mean the store itself failed, as opposed to "no such row"
STORE_EXCEPTIONS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_MEMBER_COLUMNS = """
    id, nickname, tiktok_handle, fan_since, badge, nationality, email,
    image_path, amount, is_active, is_paid, payment_reference, paid_at, created_at
"""


@dataclass
class NewMember:
    """Fields supplied at registration."""

    nickname: str
    tiktok_handle: str
    badge: str
    nationality: str
    amount: int  # base currency unit (NGN)
    fan_since: Optional[str] = None
    email: Optional[str] = None
    image_path: Optional[str] = None


@dataclass
class Member:
    """Stored member row."""

    id: int
    nickname: str
    tiktok_handle: str
    fan_since: Optional[str]
    badge: str
    nationality: str
    email: Optional[str]
    image_path: Optional[str]
    amount: int
    is_active: bool
    is_paid: bool
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> "Member":
        return cls(**{name: record[name] for name in cls.__dataclass_fields__})

    def to_dict(self) -> dict[str, Any]:
        """Public JSON shape returned by GET /member."""
        return {
            "id": self.id,
            "nickname": self.nickname,
            "tiktokHandle": self.tiktok_handle,
            "fanSince": self.fan_since,
            "badge": self.badge,
            "nationality": self.nationality,
            "email": self.email,
            "imagePath": self.image_path,
            "amount": self.amount,
            "isActive": self.is_active,
            "isPaid": self.is_paid,
            "paymentReference": self.payment_reference,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class MemberStore:
    """
    Parameterized queries against the members table.

    The store is built once at startup around the pool run_server opens and passed
    to the handlers; it never creates or closes the pool itself. Every
    database failure is re-raised as StoreError.
    """

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create(self, member: NewMember) -> int:
        """Insert a member and return its new id."""
        try:
            async with self._pool.acquire() as conn:
                member_id = await conn.fetchval(
                    f"""
                    INSERT INTO {Table.MEMBERS}
                        (nickname, tiktok_handle, fan_since, badge, nationality,
                         email, image_path, amount)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING id
                    """,
                    member.nickname,
                    member.tiktok_handle,
                    member.fan_since,
                    member.badge,
                    member.nationality,
                    member.email,
                    member.image_path,
                    member.amount,
                )
        except STORE_EXCEPTIONS as e:
            logger.error(f"Error saving member {member.nickname!r}: {e}")
            raise StoreError() from e

        logger.info(f"Registered member {member_id} (amount={member.amount})")
        return member_id

    async def find(self, member_id: int) -> Optional[Member]:
        """Return the member with this id, or None."""
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_MEMBER_COLUMNS} FROM {Table.MEMBERS} WHERE id = $1",
                    member_id,
                )
        except STORE_EXCEPTIONS as e:
            logger.error(f"Error loading member {member_id}: {e}")
            raise StoreError() from e

        return Member.from_record(row) if row else None

    async def get(self, member_id: int) -> Member:
        """Return the member with this id.

        Raises:
            NotFound: No member has this id
        """
        member = await self.find(member_id)
        if member is None:
            raise NotFound()
        return member

    async def find_by_email_and_amount(self, email: str, amount: int) -> list[Member]:
        """
        Members whose stored email and amount both match exactly.

        Ordered unpaid first, then by id, so callers picking the first
        row get a deterministic answer when several members match.
        """
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_MEMBER_COLUMNS}
                    FROM {Table.MEMBERS}
                    WHERE email = $1 AND amount = $2
                    ORDER BY is_paid ASC, id ASC
                    """,
                    email,
                    amount,
                )
        except STORE_EXCEPTIONS as e:
            logger.error(f"Error looking up members by email and amount: {e}")
            raise StoreError() from e

        return [Member.from_record(row) for row in rows]

    async def mark_paid(self, member_id: int, reference: Optional[str]) -> bool:
        """
        Flip is_paid to true in a single conditional UPDATE.

        The row only changes when the member is active and still unpaid,
        so concurrent confirmations for the same member produce exactly
        one transition.

        Returns:
            True if this call performed the transition, False otherwise
            (unknown id, inactive member, or already paid)
        """
        try:
            async with self._pool.acquire() as conn:
                updated_id = await conn.fetchval(
                    f"""
                    UPDATE {Table.MEMBERS}
                    SET is_paid = TRUE,
                        paid_at = now(),
                        payment_reference = $2
                    WHERE id = $1 AND is_active AND NOT is_paid
                    RETURNING id
                    """,
                    member_id,
                    reference,
                )
        except STORE_EXCEPTIONS as e:
            logger.error(f"Error marking member {member_id} paid: {e}")
            raise StoreError() from e

        return updated_id is not None

    async def ping(self) -> bool:
        """Run the same SELECT 1 health check the pool runs at startup."""
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except STORE_EXCEPTIONS as e:
            logger.error(f"Database health check failed: {e}")
            raise StoreError() from e
