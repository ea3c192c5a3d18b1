import secrets
import string
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..core.config import settings
from ..core.exceptions import ConflictError
from ..models.classroom import Classroom
import logging

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.digits + "ABCDEF"
JOIN_CODE_LENGTH = 8


def generate_join_code(length: int = JOIN_CODE_LENGTH) -> str:
    """Random upper-case hex code, e.g. '9F03A1C7'"""
    return ''.join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def normalize_join_code(code: str) -> str:
    return (code or "").strip().upper()


async def generate_unique_join_code(db: AsyncSession, max_attempts: int = None) -> str:
    """
    Generate a join code not used by any classroom.

    The unique index on classrooms.code still backs this up for codes
    generated concurrently by two requests.
    """
    attempts = max_attempts or settings.join_code_attempts

    for attempt in range(attempts):
        code = generate_join_code()
        existing = await db.execute(select(Classroom.id).filter(Classroom.code == code))
        if existing.scalar_one_or_none() is None:
            return code
        logger.info(f"Join code collision on attempt {attempt + 1}, retrying")

    raise ConflictError("Could not allocate a unique classroom code")
