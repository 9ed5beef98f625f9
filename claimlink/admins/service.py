"""
Administrator accounts and bearer-token sessions.

Passwords are bcrypt hashes.  A login issues a random token; only its SHA-256
digest is stored, with an absolute expiry, and logout revokes it.
"""
import asyncio
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import bcrypt
import sqlalchemy as sa

from .model import Admin, AdminSession
from ..common.clock import Clock, isoformat, utcnow
from ..common.config import settings
from ..common.database import AsyncSessionLocal
from ..common.errors import AuthenticationError, ConflictError, NotFoundError

_logger = logging.getLogger(__name__)


async def hash_password(password: str) -> str:
    # bcrypt is CPU bound; keep it off the event loop
    hashed = await asyncio.to_thread(
        bcrypt.hashpw, password.encode("utf-8"), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    )
    return hashed.decode("utf-8")


async def verify_password(password: str, password_hash: str) -> bool:
    try:
        return await asyncio.to_thread(bcrypt.checkpw, password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def _by_username(session, username: str) -> Optional[Admin]:
    res = await session.execute(sa.select(Admin).where(Admin.username == username))
    return res.scalar_one_or_none()


async def ensure_default_admin() -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            if await _by_username(session, settings.DEFAULT_ADMIN_USERNAME) is not None:
                return
            session.add(
                Admin(
                    username=settings.DEFAULT_ADMIN_USERNAME,
                    password_hash=await hash_password(settings.DEFAULT_ADMIN_PASSWORD),
                    must_change_password=True,
                )
            )
    _logger.info("Default admin created | username=%s", settings.DEFAULT_ADMIN_USERNAME)


async def _record_failed_login(session, admin: Admin, now) -> None:
    lock_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
    await session.execute(
        sa.update(Admin)
        .where(Admin.id == admin.id)
        .values(
            failed_login_attempts=Admin.failed_login_attempts + 1,
            locked_until=sa.case(
                (Admin.failed_login_attempts >= settings.MAX_FAILED_LOGINS - 1, lock_until),
                else_=Admin.locked_until,
            ),
        )
    )


async def authenticate(username: str, password: str, clock: Clock = utcnow) -> Tuple[str, Admin, Any]:
    """Check credentials and open a session. Returns (token, admin, expires_at)."""
    now = clock()
    async with AsyncSessionLocal() as session:
        async with session.begin():
            admin = await _by_username(session, username)
            if admin is None:
                _logger.warning("Login failed: unknown user | username=%s", username)
                raise AuthenticationError("Invalid credentials")
            if admin.locked_until is not None and admin.locked_until > now:
                _logger.warning("Login refused: account locked | username=%s until=%s", username, admin.locked_until)
                raise AuthenticationError("Account is temporarily locked due to repeated failed logins")
            if not await verify_password(password, admin.password_hash):
                await _record_failed_login(session, admin, now)
                failed = True
            else:
                failed = False
                admin.failed_login_attempts = 0
                admin.locked_until = None
                token = secrets.token_urlsafe(32)
                expires_at = now + timedelta(hours=settings.SESSION_TIMEOUT_HOURS)
                session.add(
                    AdminSession(admin_id=admin.id, token_hash=token_digest(token), created_at=now, expires_at=expires_at)
                )
    if failed:
        # raised after commit so the failure counter sticks
        _logger.warning("Login failed: bad password | username=%s", username)
        raise AuthenticationError("Invalid credentials")
    _logger.info("Admin logged in | username=%s", username)
    return token, admin, expires_at


async def resolve_token(token: str, clock: Clock = utcnow) -> Optional[Admin]:
    now = clock()
    async with AsyncSessionLocal() as session:
        stmt = (
            sa.select(Admin)
            .join(AdminSession, AdminSession.admin_id == Admin.id)
            .where(
                AdminSession.token_hash == token_digest(token),
                AdminSession.revoked_at.is_(None),
                AdminSession.expires_at > now,
            )
        )
        return (await session.execute(stmt)).scalar_one_or_none()


async def revoke_token(token: str, clock: Clock = utcnow) -> bool:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(
                sa.update(AdminSession)
                .where(AdminSession.token_hash == token_digest(token), AdminSession.revoked_at.is_(None))
                .values(revoked_at=clock())
            )
    return (res.rowcount or 0) > 0


async def change_password(admin_id: int, current_password: str, new_password: str) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            admin = await session.get(Admin, admin_id)
            if admin is None:
                raise AuthenticationError("Admin user not found")
            if not await verify_password(current_password, admin.password_hash):
                _logger.warning("Password change refused: wrong current password | admin_id=%s", admin_id)
                raise AuthenticationError("Current password is incorrect")
            admin.password_hash = await hash_password(new_password)
            admin.must_change_password = False
            admin.failed_login_attempts = 0
            admin.locked_until = None
            admin.updated_at = utcnow()
    _logger.info("Admin password changed | admin_id=%s", admin_id)


async def list_admins() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Admin).order_by(Admin.id))
        return [a.to_dict() for a in res.scalars().all()]


async def create_admin(username: str, password: str) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            if await _by_username(session, username) is not None:
                raise ConflictError("Username already exists")
            admin = Admin(username=username, password_hash=await hash_password(password))
            session.add(admin)
    _logger.info("Admin created | username=%s", username)
    return admin.to_dict()


async def set_admin_password(admin_id: int, new_password: str) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            admin = await session.get(Admin, admin_id)
            if admin is None:
                raise NotFoundError("Admin")
            admin.password_hash = await hash_password(new_password)
            admin.failed_login_attempts = 0
            admin.locked_until = None
            admin.updated_at = utcnow()
            # force re-login everywhere
            await session.execute(
                sa.update(AdminSession)
                .where(AdminSession.admin_id == admin_id, AdminSession.revoked_at.is_(None))
                .values(revoked_at=utcnow())
            )
    _logger.info("Admin password reset | admin_id=%s", admin_id)


async def delete_admin(admin_id: int) -> None:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            total = await session.scalar(sa.select(sa.func.count(Admin.id)))
            admin = await session.get(Admin, admin_id)
            if admin is None:
                raise NotFoundError("Admin")
            if int(total or 0) <= 1:
                raise ConflictError("Cannot delete the last admin account")
            await session.execute(sa.delete(AdminSession).where(AdminSession.admin_id == admin_id))
            await session.delete(admin)
    _logger.info("Admin deleted | admin_id=%s", admin_id)


def describe(admin: Admin) -> Dict[str, Any]:
    return {
        "username": admin.username,
        "userId": admin.id,
        "mustChangePassword": admin.must_change_password,
        "lastPasswordChange": isoformat(admin.updated_at),
    }
