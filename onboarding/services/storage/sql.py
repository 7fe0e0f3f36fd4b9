"""
SQL Storage Implementation

DESIGN DECISION: SQLAlchemy 2.0 over any SQL database (SQLite for local
use, Postgres in production) because:
1. adopt_draft needs a real transaction to be exactly-once
2. The draft store, permanent records and audit log can share one engine
3. TTL cleanup and metrics are single queries

Drafts are looked up by token, which is indexed and unique. The token is
never part of an exception message or log line.

Datetimes are stored as naive UTC and returned timezone-aware.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from onboarding.config import get_settings
from onboarding.models.audit import AuditEvent, AuditEventType, AuditSeverity
from onboarding.models.draft import (
    AccountIdentity,
    AdoptionReceipt,
    DraftSession,
    EntryDraft,
    OnboardingStep,
    PermanentAccount,
    PermanentEntry,
    PermanentProfile,
    ProfileDraft,
    SessionMetrics,
    utcnow,
)
from onboarding.services.storage.interface import (
    AccountCreationError,
    AuditStorageInterface,
    AuthProviderInterface,
    DraftConsumedError,
    DraftExpiredStorageError,
    DraftStoreInterface,
    NotFoundError,
    OrderingError,
    PermanentStorageInterface,
    StorageConnectionError,
    StorageError,
)
from onboarding.services.storage.passwords import hash_pw


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _check_live(row: Optional["DraftRow"], now: datetime) -> "DraftRow":
    """The row, if its draft can still be written to or adopted."""
    if row is None:
        raise NotFoundError("Draft not found")
    if row.completed_at is not None:
        raise DraftConsumedError("Draft already completed")
    if _from_db(row.expires_at) <= now:
        raise DraftExpiredStorageError("Draft expired")
    return row


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class DraftRow(Base):
    __tablename__ = "onboarding_drafts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    token: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    profile_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    entry_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    converted_to_account_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    extra: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    onboarding_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ProfileRow(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[float] = mapped_column(Numeric(3, 1, asdecimal=False), nullable=False)
    ethnicity: Mapped[Optional[str]] = mapped_column(String(50))
    hair_color: Mapped[Optional[str]] = mapped_column(String(50))
    location_city: Mapped[Optional[str]] = mapped_column(String(100))
    location_country: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class EntryRow(Base):
    __tablename__ = "entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    account_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    nuts: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AuditRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# =============================================================================
# DATABASE HANDLE
# =============================================================================

class SqlDatabase:
    """
    Engine and session factory shared by the SQL stores.

    In-memory SQLite URLs get a StaticPool so every session sees the
    same database.
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings().database
        self.url = url or settings.url
        self._engine = self._build_engine(self.url, settings.echo if echo is None else echo)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @staticmethod
    def _build_engine(url: str, echo: bool) -> Engine:
        if not url.startswith("sqlite"):
            return create_engine(url, echo=echo, pool_pre_ping=True)
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url, echo=echo, connect_args=connect_args, poolclass=StaticPool
            )
        return create_engine(url, echo=echo, connect_args=connect_args)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        Base.metadata.create_all(self._engine)

    def session(self) -> Session:
        return self._session_factory()


def _wrap_db_error(operation: str, error: SQLAlchemyError) -> StorageError:
    if isinstance(error, OperationalError):
        return StorageConnectionError(f"Database unavailable during {operation}")
    return StorageError(f"Database error during {operation}: {error.__class__.__name__}")


# =============================================================================
# DRAFT STORE
# =============================================================================

class SqlDraftStore(DraftStoreInterface):
    """Drafts as rows in `onboarding_drafts`."""

    def __init__(self, db: SqlDatabase, clock: Callable[[], datetime] = utcnow):
        self._db = db
        self._clock = clock

    @staticmethod
    def _row_to_draft(row: DraftRow) -> DraftSession:
        return DraftSession(
            id=UUID(row.id),
            token=row.token,
            step=OnboardingStep(row.current_step),
            profile=ProfileDraft.model_validate(row.profile_data) if row.profile_data else None,
            entry=EntryDraft.model_validate(row.entry_data) if row.entry_data else None,
            contact_email=row.contact_email,
            expires_at=_from_db(row.expires_at),
            completed_at=_from_db(row.completed_at),
            metadata=dict(row.extra or {}),
            created_at=_from_db(row.created_at),
            updated_at=_from_db(row.updated_at),
        )

    @staticmethod
    def _find(session: Session, token: str) -> Optional[DraftRow]:
        return session.execute(
            select(DraftRow).where(DraftRow.token == token)
        ).scalar_one_or_none()

    async def create_draft(
        self,
        token: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DraftSession:
        now = _to_db(self._clock())
        row = DraftRow(
            token=token,
            current_step=int(OnboardingStep.PROFILE),
            expires_at=_to_db(expires_at),
            extra=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        try:
            with self._db.session() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise StorageError("Draft token collision") from e
        except SQLAlchemyError as e:
            raise _wrap_db_error("create_draft", e) from e
        return self._row_to_draft(row)

    async def get_draft(self, token: str) -> Optional[DraftSession]:
        try:
            with self._db.session() as session:
                row = self._find(session, token)
                return self._row_to_draft(row) if row else None
        except SQLAlchemyError as e:
            raise _wrap_db_error("get_draft", e) from e

    async def update_draft(
        self,
        token: str,
        *,
        profile: Optional[ProfileDraft] = None,
        entry: Optional[EntryDraft] = None,
        contact_email: Optional[str] = None,
        min_step: Optional[int] = None,
    ) -> DraftSession:
        try:
            with self._db.session() as session, session.begin():
                row = _check_live(self._find(session, token), self._clock())
                if profile is not None:
                    row.profile_data = profile.model_dump(mode="json")
                if entry is not None:
                    if row.profile_data is None:
                        raise OrderingError("Entry cannot be saved before a profile")
                    row.entry_data = entry.model_dump(mode="json")
                if contact_email is not None:
                    row.contact_email = contact_email
                if min_step is not None:
                    row.current_step = max(row.current_step, int(min_step))
                row.updated_at = _to_db(self._clock())
                session.flush()
                return self._row_to_draft(row)
        except SQLAlchemyError as e:
            raise _wrap_db_error("update_draft", e) from e

    async def delete_expired(self, now: datetime) -> int:
        try:
            with self._db.session() as session, session.begin():
                rows = session.execute(
                    select(DraftRow).where(
                        DraftRow.completed_at.is_(None),
                        DraftRow.expires_at <= _to_db(now),
                    )
                ).scalars().all()
                for row in rows:
                    session.delete(row)
                return len(rows)
        except SQLAlchemyError as e:
            raise _wrap_db_error("delete_expired", e) from e

    async def metrics(self, now: datetime) -> SessionMetrics:
        try:
            with self._db.session() as session:
                total = session.scalar(select(func.count()).select_from(DraftRow))
                completed = session.scalar(
                    select(func.count()).select_from(DraftRow)
                    .where(DraftRow.completed_at.is_not(None))
                )
                active = session.scalar(
                    select(func.count()).select_from(DraftRow).where(
                        DraftRow.completed_at.is_(None),
                        DraftRow.expires_at > _to_db(now),
                    )
                )
        except SQLAlchemyError as e:
            raise _wrap_db_error("metrics", e) from e
        return SessionMetrics(total=total or 0, completed=completed or 0, active=active or 0)


# =============================================================================
# PERMANENT STORE
# =============================================================================

class SqlPermanentStorage(PermanentStorageInterface):
    """Accounts, profiles and entries, plus the transactional adopt."""

    def __init__(self, db: SqlDatabase, clock: Callable[[], datetime] = utcnow):
        self._db = db
        self._clock = clock

    async def adopt_draft(self, token: str, account_id: UUID) -> AdoptionReceipt:
        now = _to_db(self._clock())
        try:
            with self._db.session() as session, session.begin():
                row = session.execute(
                    select(DraftRow).where(DraftRow.token == token).with_for_update()
                ).scalar_one_or_none()
                row = _check_live(row, self._clock())

                account = session.get(AccountRow, str(account_id))
                if account is None:
                    raise StorageError(f"Unknown account: {account_id}")
                if not row.profile_data or not row.entry_data:
                    raise StorageError("Draft is missing profile or entry data")

                profile_data = ProfileDraft.model_validate(row.profile_data)
                entry_data = EntryDraft.model_validate(row.entry_data)
                if profile_data.name is None or entry_data.date is None:
                    raise StorageError("Draft data is incomplete")

                profile = ProfileRow(
                    account_id=account.id,
                    name=profile_data.name,
                    age=profile_data.age,
                    rating=profile_data.rating,
                    ethnicity=profile_data.ethnicity,
                    hair_color=profile_data.hair_color,
                    location_city=profile_data.location_city,
                    location_country=profile_data.location_country,
                    created_at=now,
                )
                session.add(profile)
                session.flush()

                entry = EntryRow(
                    profile_id=profile.id,
                    account_id=account.id,
                    entry_date=entry_data.date,
                    amount=entry_data.amount,
                    duration=entry_data.duration,
                    nuts=entry_data.nuts,
                    created_at=now,
                )
                session.add(entry)

                account.onboarding_completed = True
                account.onboarding_source = "step_flow"

                # Guarded update: a concurrent adopt that won the race leaves rowcount 0.
                result = session.execute(
                    update(DraftRow)
                    .where(DraftRow.id == row.id, DraftRow.completed_at.is_(None))
                    .values(
                        completed_at=now,
                        updated_at=now,
                        converted_to_account_id=account.id,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise DraftConsumedError("Draft already completed")
                session.flush()

                return AdoptionReceipt(
                    account_id=UUID(account.id),
                    profile_id=UUID(profile.id),
                    entry_id=UUID(entry.id),
                )
        except SQLAlchemyError as e:
            raise _wrap_db_error("adopt_draft", e) from e

    async def get_account(self, account_id: UUID) -> Optional[PermanentAccount]:
        with self._db.session() as session:
            row = session.get(AccountRow, str(account_id))
            if row is None:
                return None
            return PermanentAccount(
                id=UUID(row.id),
                email=row.email,
                onboarding_completed=row.onboarding_completed,
                onboarding_source=row.onboarding_source,
                created_at=_from_db(row.created_at),
            )

    async def list_profiles(self, account_id: UUID) -> list[PermanentProfile]:
        with self._db.session() as session:
            rows = session.execute(
                select(ProfileRow).where(ProfileRow.account_id == str(account_id))
            ).scalars().all()
            return [
                PermanentProfile(
                    id=UUID(r.id),
                    account_id=UUID(r.account_id),
                    name=r.name,
                    age=r.age,
                    rating=r.rating,
                    ethnicity=r.ethnicity,
                    hair_color=r.hair_color,
                    location_city=r.location_city,
                    location_country=r.location_country,
                    created_at=_from_db(r.created_at),
                )
                for r in rows
            ]

    async def list_entries(self, profile_id: UUID) -> list[PermanentEntry]:
        with self._db.session() as session:
            rows = session.execute(
                select(EntryRow).where(EntryRow.profile_id == str(profile_id))
            ).scalars().all()
            return [
                PermanentEntry(
                    id=UUID(r.id),
                    profile_id=UUID(r.profile_id),
                    account_id=UUID(r.account_id),
                    date=r.entry_date,
                    amount=r.amount,
                    duration=r.duration,
                    nuts=r.nuts,
                    created_at=_from_db(r.created_at),
                )
                for r in rows
            ]


# =============================================================================
# AUTH
# =============================================================================

class SqlAuthProvider(AuthProviderInterface):
    """
    Accounts in the `accounts` table with passlib-hashed passwords.

    The signed-in identity is held per instance (one instance per
    visitor session).
    """

    def __init__(self, db: SqlDatabase, clock: Callable[[], datetime] = utcnow):
        self._db = db
        self._clock = clock
        self._current: Optional[AccountIdentity] = None

    async def get_current_identity(self) -> Optional[AccountIdentity]:
        return self._current

    async def create_account(self, email: str, password: str) -> AccountIdentity:
        row = AccountRow(
            email=email.strip().lower(),
            password_hash=hash_pw(password),
            created_at=_to_db(self._clock()),
        )
        try:
            with self._db.session() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise AccountCreationError("User already registered") from e
        except SQLAlchemyError as e:
            raise AccountCreationError("Failed to create account. Please try again.") from e

        self._current = AccountIdentity(id=UUID(row.id), email=row.email)
        return self._current

    async def sign_out(self) -> None:
        self._current = None


# =============================================================================
# AUDIT
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):

    def __init__(self, db: SqlDatabase):
        self._db = db

    @staticmethod
    def _row_to_event(row: AuditRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=_from_db(row.timestamp),
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=UUID(row.entity_id) if row.entity_id else None,
            description=row.description,
            details=dict(row.details or {}),
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        row = AuditRow(
            event_id=str(event.event_id),
            timestamp=_to_db(event.timestamp),
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=str(event.entity_id) if event.entity_id else None,
            description=event.description,
            details=event.model_dump(mode="json")["details"],
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )
        try:
            with self._db.session() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            raise _wrap_db_error("append_event", e) from e
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        with self._db.session() as session:
            rows = session.execute(
                select(AuditRow)
                .where(AuditRow.entity_type == entity_type, AuditRow.entity_id == str(entity_id))
                .order_by(AuditRow.timestamp)
            ).scalars().all()
            return [self._row_to_event(r) for r in rows]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._db.session() as session:
            rows = session.execute(
                select(AuditRow).order_by(AuditRow.timestamp.desc()).limit(limit)
            ).scalars().all()
            return [self._row_to_event(r) for r in rows]
