"""Persistence layer for saved payment proposals.

The store keeps each proposal as the opaque snapshot produced by
:func:`payment_flow.snapshot.to_snapshot`, keyed by the user token of the web
session. It defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).

Saving goes through the same gate as exporting: a proposal whose payments
exceed the property value, or that lacks a client name, property value or
down payment, is refused.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from payment_flow.config import DEFAULT_DATABASE_URL, DEFAULT_MAX_PROPOSALS_PER_USER
from payment_flow.data_models import FlowDefinition
from payment_flow.engine import ensure_exportable
from payment_flow.snapshot import migrate_snapshot, to_snapshot

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProposalModel(Base):
    __tablename__ = "payment_proposals"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    client_name = Column(String(255), nullable=False)
    snapshot_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class ProposalStore:
    """Database-backed proposal store."""

    def __init__(self, url: str, *, max_per_user: int = DEFAULT_MAX_PROPOSALS_PER_USER) -> None:
        engine_options: Dict[str, Any] = {"future": True}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Share the single in-memory database across sessions
            engine_options.update(
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        self._engine = create_engine(url, **engine_options)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._max_per_user = max_per_user

    def list_proposals(self, user_token: str) -> List[Dict[str, Any]]:
        if not user_token:
            return []
        with self._session_factory() as session:
            rows: Iterable[ProposalModel] = session.execute(
                select(ProposalModel)
                .where(ProposalModel.user_token == user_token)
                .order_by(ProposalModel.created_at.desc())
            ).scalars()
            return [self._to_dict(row) for row in rows]

    def get_proposal(self, user_token: str, proposal_id: str) -> Optional[FlowDefinition]:
        """Return the saved flow, migrated to the current format."""
        if not user_token:
            return None
        with self._session_factory() as session:
            row = session.get(ProposalModel, proposal_id)
            if row is None or row.user_token != user_token:
                return None
            return migrate_snapshot(json.loads(row.snapshot_json))

    def add_proposal(self, user_token: str, proposal_id: str, flow: FlowDefinition) -> None:
        """Save ``flow``.

        Raises
        ------
        payment_flow.errors.ProposalRejected
            If the flow may not be persisted in its current state.
        """
        if not user_token:
            return
        ensure_exportable(flow)
        payload = ProposalModel(
            id=proposal_id,
            user_token=user_token,
            client_name=flow.client_name,
            snapshot_json=json.dumps(to_snapshot(flow)),
        )
        with self._session_factory() as session:
            session.add(payload)
            session.commit()
        logger.info("Saved proposal %s for %s", proposal_id, flow.client_name)
        self._trim_user(user_token)

    def remove_proposal(self, user_token: str, proposal_id: str) -> None:
        if not user_token:
            return
        with self._session_factory() as session:
            row = session.get(ProposalModel, proposal_id)
            if row and row.user_token == user_token:
                session.delete(row)
                session.commit()

    def clear_proposals(self, user_token: str) -> None:
        if not user_token:
            return
        with self._session_factory() as session:
            session.execute(
                ProposalModel.__table__.delete().where(ProposalModel.user_token == user_token)
            )
            session.commit()

    def _trim_user(self, user_token: str) -> None:
        if not self._max_per_user or self._max_per_user < 0:
            return
        with self._session_factory() as session:
            rows = session.execute(
                select(ProposalModel)
                .where(ProposalModel.user_token == user_token)
                .order_by(ProposalModel.created_at.desc())
            ).scalars().all()
            if len(rows) <= self._max_per_user:
                return
            for row in rows[self._max_per_user :]:
                session.delete(row)
            session.commit()

    @staticmethod
    def _to_dict(row: ProposalModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "clientName": row.client_name,
            "flow": json.loads(row.snapshot_json),
            "createdAt": row.created_at.isoformat(),
        }


def create_store(url: Optional[str], *, max_per_user: int = DEFAULT_MAX_PROPOSALS_PER_USER) -> ProposalStore:
    return ProposalStore(url or DEFAULT_DATABASE_URL, max_per_user=max_per_user)
