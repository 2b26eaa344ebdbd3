"""
Check-in token verification and issuance.

A check-in token is the opaque string encoded in a member's QR code (or
deep link). Anyone holding it is treated as that member for self check-in,
so tokens are high-entropy and only their SHA-256 hash is stored. Lookups
go through the unique hash index, never a scan over token values.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from .database import get_connection, get_transaction
from .errors import NotFoundError
from .tables import members

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
# token_urlsafe(32) is 43 chars; anything far longer is not one of ours
MAX_TOKEN_LENGTH = 256


@dataclass(frozen=True)
class MemberRef:
    """The member a verified token belongs to."""

    member_id: int
    first_name: str
    last_name: str | None = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


def generate_check_in_token() -> str:
    """Generate a new unguessable check-in token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_check_in_token(token: str) -> str:
    """Hash a token for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def find_member_by_token(
    conn: AsyncConnection,
    token: str,
) -> MemberRef | None:
    """
    Look up the member owning a check-in token on an existing connection.

    Returns None when the token is empty, oversized or unknown.
    """
    token = (token or "").strip()
    if not token or len(token) > MAX_TOKEN_LENGTH:
        return None

    token_hash = hash_check_in_token(token)
    result = await conn.execute(
        select(
            members.c.member_id,
            members.c.first_name,
            members.c.last_name,
            members.c.check_in_token_hash,
        ).where(members.c.check_in_token_hash == token_hash)
    )
    row = result.mappings().first()
    if not row:
        return None

    if not hmac.compare_digest(row["check_in_token_hash"], token_hash):
        return None

    return MemberRef(
        member_id=row["member_id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
    )


async def verify_check_in_token(token: str) -> MemberRef:
    """
    Verify a scanned or linked check-in token.

    Read-only.

    Raises:
        NotFoundError: If no member holds this token
    """
    async with get_connection() as conn:
        member = await find_member_by_token(conn, token)

    if member is None:
        raise NotFoundError("Unknown check-in token")
    return member


async def issue_check_in_token(member_id: int) -> str:
    """
    Issue (or rotate) a member's check-in token.

    The previous token stops working immediately. The returned token is
    not stored anywhere and must be rendered into the QR code now.

    Raises:
        NotFoundError: If the member does not exist
    """
    token = generate_check_in_token()

    async with get_transaction() as conn:
        result = await conn.execute(
            update(members)
            .where(members.c.member_id == member_id)
            .values(
                check_in_token_hash=hash_check_in_token(token),
                check_in_token_issued_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Member {member_id} not found")

    logger.info(f"Issued new check-in token for member {member_id}")
    return token
