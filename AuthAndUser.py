import hmac
import logging
import secrets
from typing import Annotated, Optional

import bcrypt
from fastapi import Depends, Request, Response
from fastapi.concurrency import run_in_threadpool

from domain.user import LoginRequest, Role, SignUpUser, UserInDB, UserUpdate
from errors import (
    AuthenticationError,
    AuthorizationError,
    DuplicateUsername,
    InvalidCredentials,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)
from sessions import SessionManager, SessionRecord
from storage import Storage

logger = logging.getLogger('uvicorn.error')

KDF_ROUNDS = 50
KDF_KEY_BYTES = 64
SALT_BYTES = 16
HASH_DELIMITER = "."
ROUNDS_DELIMITER = "$"

# Every Role must appear here; a missing one fails loudly in is_admin.
ROLE_PRIVILEGES = {
    Role.ADMIN: True,
    Role.USER: False,
}


def _derive(password: str, salt: bytes, rounds: int) -> bytes:
    return bcrypt.kdf(
        password=bytes(password, encoding="utf-8"),
        salt=salt,
        desired_key_bytes=KDF_KEY_BYTES,
        rounds=rounds,
    )


def get_password_hash(password: str) -> str:
    """
    Salted bcrypt-pbkdf digest, stored as "<hex digest>.<rounds>$<hex salt>".

    The round count travels with the salt so KDF_ROUNDS can be raised without
    invalidating existing hashes.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    digest = _derive(password, salt, KDF_ROUNDS)
    return f"{digest.hex()}{HASH_DELIMITER}{KDF_ROUNDS}{ROUNDS_DELIMITER}{salt.hex()}"


def _split_salt(salt_part: str):
    # Hashes written before the round count was recorded used KDF_ROUNDS.
    if ROUNDS_DELIMITER not in salt_part:
        return KDF_ROUNDS, bytes.fromhex(salt_part)
    rounds, salt = salt_part.split(ROUNDS_DELIMITER, 1)
    return int(rounds), bytes.fromhex(salt)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    parts = (hashed_password or "").split(HASH_DELIMITER)
    if len(parts) != 2 or not all(parts):
        logger.warning("Stored password hash is malformed; refusing login")
        return False
    try:
        expected = bytes.fromhex(parts[0])
        rounds, salt = _split_salt(parts[1])
        supplied = _derive(plain_password, salt, rounds)
    except ValueError as e:
        logger.warning(f"Could not check password against stored hash: {e}")
        return False
    if len(expected) != len(supplied):
        logger.warning(f"Stored password hash length mismatch: {len(expected)} vs {len(supplied)}")
        return False
    return hmac.compare_digest(expected, supplied)


def is_admin(user: Optional[UserInDB]) -> bool:
    return user is not None and ROLE_PRIVILEGES[user.role]


class Authenticator:
    """Register / login / logout / profile updates over a Storage and a SessionManager."""

    def __init__(self, storage: Storage, sessions: SessionManager):
        self.storage = storage
        self.sessions = sessions

    async def register(self, new_user: SignUpUser) -> UserInDB:
        if await self.storage.get_user_by_username(new_user.username) is not None:
            logger.info(f"Registration refused, username '{new_user.username}' is taken")
            raise DuplicateUsername()
        password_hash = await run_in_threadpool(get_password_hash, new_user.password)
        profile = new_user.model_dump(exclude={"username", "password"})
        user = await self.storage.create_user(new_user.username, password_hash, role=Role.USER, **profile)
        logger.info(f"Registered user '{user.username}' ({user.id})")
        return user

    async def authenticate(self, username: str, password: str) -> UserInDB:
        user = await self.storage.get_user_by_username(username)
        if user is None or not await run_in_threadpool(verify_password, password, user.password_hash):
            logger.info(f"Failed login for '{username}'")
            raise InvalidCredentials()
        return user

    async def login(self, credentials: LoginRequest) -> UserInDB:
        user = await self.authenticate(credentials.username, credentials.password)
        logger.info(f"User '{user.username}' logged in")
        return user

    async def start_session(self, user: UserInDB, request: Request, response: Response) -> SessionRecord:
        # Rotate: never reuse an id the client already held.
        await self.sessions.revoke(self.sessions.session_id_from(request))
        record = await self.sessions.issue(user.id)
        self.sessions.set_cookie(response, record, request)
        return record

    async def logout(self, request: Request, response: Response) -> None:
        session_id = self.sessions.session_id_from(request)
        try:
            await self.sessions.revoke(session_id)
        except StoreUnavailable as e:
            # The cookie is cleared regardless; the record will expire on its own.
            logger.error(f"Could not delete session record on logout: {e}")
        self.sessions.clear_cookie(response, request)

    async def current_user(self, request: Request, response: Response) -> Optional[UserInDB]:
        record = await self.sessions.resolve(self.sessions.session_id_from(request))
        if record is None:
            return None
        try:
            user = await self.storage.get_user(record.user_id)
        except StoreUnavailable as e:
            logger.error(f"User store unavailable, treating request as anonymous: {e}")
            return None
        if user is None:
            logger.warning(f"Session references missing user {record.user_id}")
            return None
        self.sessions.set_cookie(response, record, request)
        return user

    async def update_profile(self, caller: UserInDB, user_id: str, update: UserUpdate) -> UserInDB:
        if caller.id != user_id:
            logger.warning(f"User '{caller.username}' attempted to update profile {user_id}")
            raise AuthorizationError("You can only update your own profile")
        changes = update.model_dump(exclude_unset=True, exclude={"password", "current_password"})
        if update.password:
            if not update.current_password:
                raise ValidationError.for_field("currentPassword", "Current password is required to change password")
            if not await run_in_threadpool(verify_password, update.current_password, caller.password_hash):
                raise ValidationError.for_field("currentPassword", "Current password is incorrect")
            changes["password_hash"] = await run_in_threadpool(get_password_hash, update.password)
        updated = await self.storage.update_user(user_id, changes)
        if updated is None:
            raise NotFoundError("User not found")
        logger.info(f"User '{updated.username}' updated fields {sorted(changes)}")
        return updated


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


async def get_optional_user(
    request: Request,
    response: Response,
    authenticator: Annotated[Authenticator, Depends(get_authenticator)],
) -> Optional[UserInDB]:
    return await authenticator.current_user(request, response)


async def get_current_user(
    current_user: Annotated[Optional[UserInDB], Depends(get_optional_user)],
) -> UserInDB:
    if current_user is None:
        raise AuthenticationError()
    return current_user


async def require_admin(
    current_user: Annotated[UserInDB, Depends(get_current_user)],
) -> UserInDB:
    if not is_admin(current_user):
        logger.warning(f"User '{current_user.username}' denied admin-only action")
        raise AuthorizationError("Admin privileges required")
    return current_user
