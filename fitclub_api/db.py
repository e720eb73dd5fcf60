"""
Store abstraction for accounts, users and groups, with a SQLAlchemy
implementation and an in-memory one for development and tests.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    Integer,
    String,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fitclub_api.errors import ConflictError
from fitclub_shared.types import AccountProvider, AccountStatus, Visibility

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "age", "sex", "height", "weight", "account_id")
GROUP_FIELDS = ("name", "visibility", "photo_url")

ACCOUNT_LINKED_MESSAGE = "Account is already linked to another user"


class DbClient(Protocol):
    """Interface for the document store."""

    def create_account(
        self, email: str, password_hash: str, provider: AccountProvider
    ) -> "AccountRecord":
        ...

    def get_account(self, account_id: str) -> Optional["AccountRecord"]:
        ...

    def find_account_by_email(self, email: str) -> Optional["AccountRecord"]:
        ...

    def update_account_status(
        self, account_id: str, status: AccountStatus
    ) -> Optional["AccountRecord"]:
        ...

    def list_users(self, limit: int = 500) -> list["UserRecord"]:
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_users(self, user_ids: Iterable[str]) -> list["UserRecord"]:
        ...

    def create_user(self, fields: dict) -> "UserRecord":
        ...

    def update_user(self, user_id: str, fields: dict) -> Optional["UserRecord"]:
        ...

    def set_user_avatar(self, user_id: str, avatar_url: str) -> Optional["UserRecord"]:
        ...

    def delete_user(self, user_id: str) -> bool:
        ...

    def list_public_groups(self, limit: int = 500) -> list["GroupRecord"]:
        ...

    def list_joined_groups(self, user_id: str) -> list["GroupRecord"]:
        ...

    def get_group(self, group_id: str) -> Optional["GroupRecord"]:
        ...

    def create_group(
        self,
        *,
        name: str,
        visibility: Visibility,
        owner_id: Optional[str] = None,
        members: Iterable[str] = (),
        photo_url: Optional[str] = None,
    ) -> "GroupRecord":
        ...

    def update_group(self, group_id: str, fields: dict) -> Optional["GroupRecord"]:
        ...

    def add_group_member(self, group_id: str, user_id: str) -> Optional["GroupRecord"]:
        ...

    def remove_group_member(
        self, group_id: str, user_id: str
    ) -> Optional["GroupRecord"]:
        ...

    def invite_group_members(
        self, group_id: str, user_ids: Iterable[str]
    ) -> Optional["GroupRecord"]:
        ...

    def delete_group(self, group_id: str) -> bool:
        ...


@dataclass
class AccountRecord:
    account_id: str
    email: str
    password_hash: str
    provider: AccountProvider
    status: AccountStatus
    created_at: float = field(default_factory=lambda: time.time())

    def as_public_dict(self) -> dict:
        """Projection safe to return to clients; never includes the hash."""
        return {
            "_id": self.account_id,
            "email": self.email,
            "provider": self.provider.value,
            "status": self.status.value,
        }


@dataclass
class UserRecord:
    user_id: str
    name: str
    age: int
    sex: str
    height: Optional[dict] = None
    weight: Optional[dict] = None
    avatar_url: Optional[str] = None
    account_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "_id": self.user_id,
            "name": self.name,
            "age": self.age,
            "sex": self.sex,
            "height": self.height,
            "weight": self.weight,
            "avatarUrl": self.avatar_url,
            "accountId": self.account_id,
        }

    def as_basic_dict(self) -> dict:
        return {"_id": self.user_id, "name": self.name, "avatarUrl": self.avatar_url}


@dataclass
class GroupRecord:
    group_id: str
    name: str
    visibility: Visibility
    owner_id: Optional[str] = None
    members: list[str] = field(default_factory=list)
    invited: list[str] = field(default_factory=list)
    photo_url: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "_id": self.group_id,
            "name": self.name,
            "visibility": self.visibility.value,
            "ownerId": self.owner_id,
            "members": list(self.members),
            "invited": list(self.invited),
            "photoUrl": self.photo_url,
        }


def _unique(ids: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for item in ids:
        if item and item not in seen:
            seen.append(item)
    return seen


def as_dicts(records: Iterable[Any], basic: bool = False) -> list[dict]:
    """Serialises records for a JSON envelope."""
    if basic:
        return [record.as_basic_dict() for record in records]
    return [record.as_dict() for record in records]


class InMemoryDbClient:
    """Simple in-memory store for development and tests.

    Writes are serialised with a lock because sync routes run in a threadpool.
    """

    def __init__(self):
        self.accounts: Dict[str, AccountRecord] = {}
        self.users: Dict[str, UserRecord] = {}
        self.groups: Dict[str, GroupRecord] = {}
        self._lock = Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.accounts.clear()
            self.users.clear()
            self.groups.clear()

    def create_account(
        self, email: str, password_hash: str, provider: AccountProvider
    ) -> AccountRecord:
        with self._lock:
            if self.find_account_by_email(email):
                raise ConflictError("Account with that email already exists!")
            record = AccountRecord(
                account_id=uuid.uuid4().hex,
                email=email,
                password_hash=password_hash,
                provider=provider,
                status=AccountStatus.PENDING,
            )
            self.accounts[record.account_id] = record
            return record

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        return self.accounts.get(account_id)

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        for account in list(self.accounts.values()):
            if account.email == email:
                return account
        return None

    def update_account_status(
        self, account_id: str, status: AccountStatus
    ) -> Optional[AccountRecord]:
        with self._lock:
            account = self.accounts.get(account_id)
            if account:
                account.status = status
            return account

    def list_users(self, limit: int = 500) -> list[UserRecord]:
        return list(self.users.values())[:limit]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_users(self, user_ids: Iterable[str]) -> list[UserRecord]:
        return [self.users[uid] for uid in user_ids if uid in self.users]

    def _check_account_link(
        self, account_id: Optional[str], user_id: str = ""
    ) -> None:
        if not account_id:
            return
        for user in self.users.values():
            if user.account_id == account_id and user.user_id != user_id:
                raise ConflictError(ACCOUNT_LINKED_MESSAGE)

    def create_user(self, fields: dict) -> UserRecord:
        values = {key: fields.get(key) for key in USER_FIELDS}
        with self._lock:
            self._check_account_link(values["account_id"])
            record = UserRecord(user_id=uuid.uuid4().hex, **values)
            self.users[record.user_id] = record
            return record

    def update_user(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            if not user:
                return None
            if "account_id" in fields:
                self._check_account_link(fields["account_id"], user_id)
            for key in USER_FIELDS:
                if key in fields:
                    setattr(user, key, fields[key])
            user.updated_at = time.time()
            return user

    def set_user_avatar(self, user_id: str, avatar_url: str) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            if user:
                user.avatar_url = avatar_url
                user.updated_at = time.time()
            return user

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            if self.users.pop(user_id, None) is None:
                return False
            for group in self.groups.values():
                if user_id in group.members:
                    group.members.remove(user_id)
                if user_id in group.invited:
                    group.invited.remove(user_id)
                if group.owner_id == user_id:
                    group.owner_id = None
            return True

    def list_public_groups(self, limit: int = 500) -> list[GroupRecord]:
        groups = [g for g in self.groups.values() if g.visibility == Visibility.PUBLIC]
        return groups[:limit]

    def list_joined_groups(self, user_id: str) -> list[GroupRecord]:
        return [g for g in self.groups.values() if user_id in g.members]

    def get_group(self, group_id: str) -> Optional[GroupRecord]:
        return self.groups.get(group_id)

    def create_group(
        self,
        *,
        name: str,
        visibility: Visibility,
        owner_id: Optional[str] = None,
        members: Iterable[str] = (),
        photo_url: Optional[str] = None,
    ) -> GroupRecord:
        record = GroupRecord(
            group_id=uuid.uuid4().hex,
            name=name,
            visibility=visibility,
            owner_id=owner_id,
            members=_unique([owner_id, *members]),
            photo_url=photo_url,
        )
        with self._lock:
            self.groups[record.group_id] = record
        return record

    def update_group(self, group_id: str, fields: dict) -> Optional[GroupRecord]:
        with self._lock:
            group = self.groups.get(group_id)
            if not group:
                return None
            for key in GROUP_FIELDS:
                if key in fields:
                    setattr(group, key, fields[key])
            group.updated_at = time.time()
            return group

    def add_group_member(self, group_id: str, user_id: str) -> Optional[GroupRecord]:
        with self._lock:
            group = self.groups.get(group_id)
            if not group:
                return None
            if user_id not in group.members:
                group.members.append(user_id)
            if user_id in group.invited:
                group.invited.remove(user_id)
            group.updated_at = time.time()
            return group

    def remove_group_member(
        self, group_id: str, user_id: str
    ) -> Optional[GroupRecord]:
        with self._lock:
            group = self.groups.get(group_id)
            if group and user_id in group.members:
                group.members.remove(user_id)
                group.updated_at = time.time()
            return group

    def invite_group_members(
        self, group_id: str, user_ids: Iterable[str]
    ) -> Optional[GroupRecord]:
        with self._lock:
            group = self.groups.get(group_id)
            if not group:
                return None
            for user_id in _unique(user_ids):
                if user_id not in group.members and user_id not in group.invited:
                    group.invited.append(user_id)
            group.updated_at = time.time()
            return group

    def delete_group(self, group_id: str) -> bool:
        with self._lock:
            return self.groups.pop(group_id, None) is not None


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_account_record(self, row: "AccountRow") -> AccountRecord:
        return AccountRecord(
            account_id=row.account_id,
            email=row.email,
            password_hash=row.password_hash,
            provider=AccountProvider(row.provider),
            status=AccountStatus(row.status),
            created_at=row.created_at,
        )

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            name=row.name,
            age=row.age,
            sex=row.sex,
            height=row.height,
            weight=row.weight,
            avatar_url=row.avatar_url,
            account_id=row.account_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_group_record(self, session: Session, row: "GroupRow") -> GroupRecord:
        members = session.execute(
            select(GroupMemberRow.user_id)
            .where(GroupMemberRow.group_id == row.group_id)
            .order_by(GroupMemberRow.position.asc())
        ).scalars()
        invited = session.execute(
            select(GroupInviteRow.user_id)
            .where(GroupInviteRow.group_id == row.group_id)
            .order_by(GroupInviteRow.position.asc())
        ).scalars()
        return GroupRecord(
            group_id=row.group_id,
            name=row.name,
            visibility=Visibility(row.visibility),
            owner_id=row.owner_id,
            members=list(members),
            invited=list(invited),
            photo_url=row.photo_url,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_account(
        self, email: str, password_hash: str, provider: AccountProvider
    ) -> AccountRecord:
        row = AccountRow(
            account_id=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            provider=provider.value,
            status=AccountStatus.PENDING.value,
            created_at=time.time(),
        )
        with self.Session() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("Account with that email already exists!") from exc
            return self._to_account_record(row)

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            return self._to_account_record(row) if row else None

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.execute(
                select(AccountRow).where(AccountRow.email == email)
            ).scalar_one_or_none()
            return self._to_account_record(row) if row else None

    def update_account_status(
        self, account_id: str, status: AccountStatus
    ) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            if not row:
                return None
            row.status = status.value
            session.commit()
            return self._to_account_record(row)

    def list_users(self, limit: int = 500) -> list[UserRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).order_by(UserRow.created_at.asc()).limit(limit)
            ).scalars()
            return [self._to_user_record(row) for row in rows]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> list[UserRecord]:
        ids = list(user_ids)
        if not ids:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).where(UserRow.user_id.in_(ids))
            ).scalars()
            by_id = {row.user_id: self._to_user_record(row) for row in rows}
        return [by_id[uid] for uid in ids if uid in by_id]

    def create_user(self, fields: dict) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            row = UserRow(
                user_id=uuid.uuid4().hex,
                created_at=now,
                updated_at=now,
                **{key: fields.get(key) for key in USER_FIELDS},
            )
            session.add(row)
            self._commit_user(session)
            return self._to_user_record(row)

    def update_user(self, user_id: str, fields: dict) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            for key in USER_FIELDS:
                if key in fields:
                    setattr(row, key, fields[key])
            row.updated_at = time.time()
            self._commit_user(session)
            return self._to_user_record(row)

    def _commit_user(self, session: Session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(ACCOUNT_LINKED_MESSAGE) from exc

    def set_user_avatar(self, user_id: str, avatar_url: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            row.avatar_url = avatar_url
            row.updated_at = time.time()
            session.commit()
            return self._to_user_record(row)

    def delete_user(self, user_id: str) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            session.delete(row)
            session.execute(delete(GroupMemberRow).where(GroupMemberRow.user_id == user_id))
            session.execute(delete(GroupInviteRow).where(GroupInviteRow.user_id == user_id))
            for group in session.execute(
                select(GroupRow).where(GroupRow.owner_id == user_id)
            ).scalars():
                group.owner_id = None
            session.commit()
            return True

    def list_public_groups(self, limit: int = 500) -> list[GroupRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(GroupRow)
                .where(GroupRow.visibility == Visibility.PUBLIC.value)
                .order_by(GroupRow.created_at.asc())
                .limit(limit)
            ).scalars().all()
            return [self._to_group_record(session, row) for row in rows]

    def list_joined_groups(self, user_id: str) -> list[GroupRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(GroupRow)
                .join(GroupMemberRow, GroupMemberRow.group_id == GroupRow.group_id)
                .where(GroupMemberRow.user_id == user_id)
                .order_by(GroupRow.created_at.asc())
            ).scalars().all()
            return [self._to_group_record(session, row) for row in rows]

    def get_group(self, group_id: str) -> Optional[GroupRecord]:
        with self.Session() as session:
            row = session.get(GroupRow, group_id)
            return self._to_group_record(session, row) if row else None

    def create_group(
        self,
        *,
        name: str,
        visibility: Visibility,
        owner_id: Optional[str] = None,
        members: Iterable[str] = (),
        photo_url: Optional[str] = None,
    ) -> GroupRecord:
        now = time.time()
        with self.Session() as session:
            row = GroupRow(
                group_id=uuid.uuid4().hex,
                name=name,
                visibility=visibility.value,
                owner_id=owner_id,
                photo_url=photo_url,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            for position, user_id in enumerate(_unique([owner_id, *members]), start=1):
                session.add(
                    GroupMemberRow(group_id=row.group_id, user_id=user_id, position=position)
                )
            session.commit()
            return self._to_group_record(session, row)

    def update_group(self, group_id: str, fields: dict) -> Optional[GroupRecord]:
        with self.Session() as session:
            row = session.get(GroupRow, group_id)
            if not row:
                return None
            for key in GROUP_FIELDS:
                if key in fields:
                    value = fields[key]
                    setattr(row, key, Visibility(value).value if key == "visibility" else value)
            row.updated_at = time.time()
            session.commit()
            return self._to_group_record(session, row)

    def _locked_group(self, session: Session, group_id: str) -> Optional["GroupRow"]:
        return session.get(GroupRow, group_id, with_for_update=True)

    def _next_position(self, session: Session, model, group_id: str) -> int:
        current = session.execute(
            select(func.max(model.position)).where(model.group_id == group_id)
        ).scalar()
        return (current or 0) + 1

    def add_group_member(self, group_id: str, user_id: str) -> Optional[GroupRecord]:
        with self.Session() as session:
            row = self._locked_group(session, group_id)
            if not row:
                return None
            if not session.get(GroupMemberRow, (group_id, user_id)):
                position = self._next_position(session, GroupMemberRow, group_id)
                session.add(
                    GroupMemberRow(group_id=group_id, user_id=user_id, position=position)
                )
            session.execute(
                delete(GroupInviteRow).where(
                    GroupInviteRow.group_id == group_id,
                    GroupInviteRow.user_id == user_id,
                )
            )
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError:
                # A concurrent request inserted the same membership first.
                session.rollback()
                logger.info("Member %s already present in group %s", user_id, group_id)
            return self._to_group_record(session, session.get(GroupRow, group_id))

    def remove_group_member(
        self, group_id: str, user_id: str
    ) -> Optional[GroupRecord]:
        with self.Session() as session:
            row = self._locked_group(session, group_id)
            if not row:
                return None
            member = session.get(GroupMemberRow, (group_id, user_id))
            if member:
                session.delete(member)
                row.updated_at = time.time()
            session.commit()
            return self._to_group_record(session, row)

    def invite_group_members(
        self, group_id: str, user_ids: Iterable[str]
    ) -> Optional[GroupRecord]:
        with self.Session() as session:
            row = self._locked_group(session, group_id)
            if not row:
                return None
            now = time.time()
            position = self._next_position(session, GroupInviteRow, group_id)
            for user_id in _unique(user_ids):
                if session.get(GroupMemberRow, (group_id, user_id)):
                    continue
                if session.get(GroupInviteRow, (group_id, user_id)):
                    continue
                session.add(
                    GroupInviteRow(group_id=group_id, user_id=user_id, position=position)
                )
                position += 1
            row.updated_at = now
            session.commit()
            return self._to_group_record(session, row)

    def delete_group(self, group_id: str) -> bool:
        with self.Session() as session:
            row = session.get(GroupRow, group_id)
            if not row:
                return False
            session.execute(delete(GroupMemberRow).where(GroupMemberRow.group_id == group_id))
            session.execute(delete(GroupInviteRow).where(GroupInviteRow.group_id == group_id))
            session.delete(row)
            session.commit()
            return True


Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "accounts"

    account_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column("password", String, nullable=False)
    provider = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    account_id = Column(String, nullable=True, unique=True, index=True)
    name = Column(String, nullable=False)
    age = Column(Integer, nullable=False)
    sex = Column(String, nullable=False)
    height = Column(JSON, nullable=True)
    weight = Column(JSON, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class GroupRow(Base):
    __tablename__ = "groups"

    group_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    visibility = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class GroupMemberRow(Base):
    __tablename__ = "group_members"

    group_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True, index=True)
    position = Column(Integer, nullable=False)


class GroupInviteRow(Base):
    __tablename__ = "group_invites"

    group_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True, index=True)
    position = Column(Integer, nullable=False)
