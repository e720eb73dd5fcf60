"""
Password hashing, credential checks and session tokens.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from fitclub_api.config import get_settings
from fitclub_api.db import AccountRecord, DbClient
from fitclub_api.dependencies import get_db_client
from fitclub_api.errors import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from fitclub_shared.types import AccountProvider, AccountStatus
from fitclub_shared.validation import validate_email, validate_password

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{get_settings().api_prefix}/auth/login", auto_error=False
)


@lru_cache(maxsize=1)
def get_pwd_context() -> CryptContext:
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
    )


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_password_hash(password: str) -> str:
    """Salted bcrypt hash; a fresh random salt is drawn on every call."""
    return get_pwd_context().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return get_pwd_context().verify(plain_password, hashed_password)


def create_account(
    db: DbClient,
    email: str,
    password: str,
    provider: AccountProvider = AccountProvider.CREDENTIALS,
) -> AccountRecord:
    """Registers a PENDING account, refusing an email that is already taken."""
    message = validate_email(email) or validate_password(password)
    if message:
        raise ValidationError(message)

    email = normalize_email(email)
    if db.find_account_by_email(email):
        raise ConflictError("Account with that email already exists!")
    account = db.create_account(email, get_password_hash(password), provider)
    logger.info("Created account %s", account.account_id)
    return account


def authenticate(db: DbClient, email: str, password: str) -> AccountRecord:
    """
    Checks an email/password pair.

    Unknown emails and wrong passwords fail with the same error so callers
    cannot tell which accounts exist.
    """
    account = db.find_account_by_email(normalize_email(email or ""))
    if not account:
        # Burn comparable time so response latency does not leak existence.
        get_pwd_context().dummy_verify()
        logger.warning("Failed login attempt")
        raise InvalidCredentialsError()
    if not verify_password(password or "", account.password_hash):
        logger.warning("Failed login attempt for account %s", account.account_id)
        raise InvalidCredentialsError()
    if account.status == AccountStatus.BLOCKED:
        logger.warning("Login attempt for blocked account %s", account.account_id)
        raise InvalidCredentialsError("Account is blocked.")
    return account


def create_access_token(account_id: str, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": account_id, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Returns the account id carried by a valid token."""
    settings = get_settings()
    credentials_exception = InvalidCredentialsError("Could not validate credentials")
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        raise credentials_exception
    account_id = payload.get("sub")
    if not account_id:
        raise credentials_exception
    return account_id


def get_current_account(
    token: Optional[str] = Depends(oauth2_scheme),
    db: DbClient = Depends(get_db_client),
) -> AccountRecord:
    if not token:
        raise InvalidCredentialsError("Not authenticated")
    account = db.get_account(decode_access_token(token))
    if not account or account.status == AccountStatus.BLOCKED:
        raise InvalidCredentialsError("Could not validate credentials")
    return account


_STATUS_TRANSITIONS = {
    AccountStatus.PENDING: {AccountStatus.ACTIVE, AccountStatus.BLOCKED},
    AccountStatus.ACTIVE: {AccountStatus.BLOCKED},
    AccountStatus.BLOCKED: {AccountStatus.ACTIVE},
}


def set_account_status(
    db: DbClient, account_id: str, status: AccountStatus
) -> AccountRecord:
    account = db.get_account(account_id)
    if not account:
        raise NotFoundError("Account not found")
    if account.status == status:
        return account
    if status not in _STATUS_TRANSITIONS[account.status]:
        raise ValidationError(
            f"Cannot change account status from {account.status} to {status}"
        )
    updated = db.update_account_status(account_id, status)
    if not updated:
        raise NotFoundError("Account not found")
    logger.info("Account %s moved to %s", account_id, status)
    return updated
