"""
Preference store: persistence of explicit (user, notification type, channel) records.

One row per composite key. Absence of a row means "no explicit override";
the default cascade applies. Upserts are last-writer-wins.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from sqlalchemy import Boolean, Column, Index, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from notification_preferences.db import Base, TimestampMixin, generate_uuid
from notification_preferences.models import PreferenceRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotificationPreference(Base, TimestampMixin):
    """
    Explicit notification preference for a user.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Owner of the preference
        notification_type: Catalog key of the notification type
        channel: Catalog key of the delivery channel
        enabled: Whether the channel is enabled for the notification type
    """

    __tablename__ = "notification_preferences"

    id = Column(String(255), primary_key=True, default=generate_uuid)

    user_id = Column(String(255), nullable=False, index=True)
    notification_type = Column(String(255), nullable=False)
    channel = Column(String(64), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "notification_type", "channel",
            name="uq_notification_pref_user_type_channel",
        ),
        Index("ix_notification_prefs_user_type", "user_id", "notification_type"),
    )

    def to_record(self) -> PreferenceRecord:
        return PreferenceRecord(
            id=self.id,
            user_id=self.user_id,
            notification_type=self.notification_type,
            channel=self.channel,
            enabled=bool(self.enabled),
        )

    def __repr__(self) -> str:
        return (
            f"<NotificationPreference(user_id={self.user_id}, "
            f"notification_type={self.notification_type}, channel={self.channel}, "
            f"enabled={self.enabled})>"
        )


class PreferenceStore:
    """
    SQLAlchemy-backed preference store.

    Each call runs in its own transaction unless it happens inside
    run_atomically(), in which case it joins the surrounding transaction.
    Callbacks registered with after_commit() run once that transaction has
    committed and are dropped if it rolls back.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._local = threading.local()

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "session", None) is not None

    @property
    def transaction_info(self) -> Optional[Dict[Any, Any]]:
        """Scratch dict tied to the active run_atomically() transaction, or None outside one."""
        session: Optional[Session] = getattr(self._local, "session", None)
        return session.info if session is not None else None

    def after_commit(self, callback: Callable[[], Any]) -> None:
        """Run callback after the active transaction commits; immediately when none is active."""
        hooks: Optional[List[Callable[[], Any]]] = getattr(self._local, "after_commit", None)
        if hooks is None:
            callback()
            return
        hooks.append(callback)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        active: Optional[Session] = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        with self._session_factory() as session:
            with session.begin():
                yield session

    def run_atomically(self, fn: Callable[[], T]) -> T:
        """
        Run fn inside one transaction. Commits when fn returns, rolls back
        and re-raises when it fails. Nested calls join the outer transaction.
        """
        if self.in_transaction:
            return fn()

        hooks: List[Callable[[], Any]] = []
        with self._session_factory() as session:
            with session.begin():
                self._local.session = session
                self._local.after_commit = hooks
                try:
                    result = fn()
                finally:
                    self._local.session = None
                    self._local.after_commit = None

        for hook in hooks:
            hook()
        return result

    def find_one(self, user_id: str, notification_type: str, channel: str) -> Optional[PreferenceRecord]:
        with self._session() as session:
            row = self._select_one(session, user_id, notification_type, channel)
            return row.to_record() if row is not None else None

    def find_all(self, user_id: str) -> List[PreferenceRecord]:
        with self._session() as session:
            stmt = (
                select(NotificationPreference)
                .where(NotificationPreference.user_id == user_id)
                .order_by(NotificationPreference.notification_type, NotificationPreference.channel)
            )
            return [row.to_record() for row in session.execute(stmt).scalars()]

    def upsert(
        self,
        user_id: str,
        notification_type: str,
        channel: str,
        enabled: bool,
    ) -> Tuple[PreferenceRecord, bool]:
        """Insert or update the record. Returns (record, was_created)."""
        with self._session() as session:
            row = self._select_one(session, user_id, notification_type, channel)
            was_created = row is None

            if row is None:
                row = NotificationPreference(
                    user_id=user_id,
                    notification_type=notification_type,
                    channel=channel,
                    enabled=enabled,
                )
                try:
                    with session.begin_nested():
                        session.add(row)
                        session.flush()
                except IntegrityError:
                    # A concurrent writer inserted the same key first; last writer wins.
                    row = self._select_one(session, user_id, notification_type, channel)
                    if row is None:
                        raise
                    logger.info(
                        "notification_preferences.upsert_conflict",
                        extra={
                            "user_id": user_id,
                            "notification_type": notification_type,
                            "channel": channel,
                        },
                    )
                    was_created = False
                    row.enabled = enabled
            else:
                row.enabled = enabled

            session.flush()
            return row.to_record(), was_created

    @staticmethod
    def _select_one(
        session: Session,
        user_id: str,
        notification_type: str,
        channel: str,
    ) -> Optional[NotificationPreference]:
        stmt = (
            select(NotificationPreference)
            .where(NotificationPreference.user_id == user_id)
            .where(NotificationPreference.notification_type == notification_type)
            .where(NotificationPreference.channel == channel)
        )
        return session.execute(stmt).scalar_one_or_none()
