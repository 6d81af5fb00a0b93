"""
SQLAlchemy-backed versioned store.

The conditional patch is a single ``UPDATE ... WHERE <key> AND version = :expected``
statement; the database applies it atomically, and a rowcount of zero means
another writer got there first. SQLAlchemy sessions are blocking, so every
call runs in a worker thread.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..errors import EntityAlreadyExists, VersionConflictError
from .base import INITIAL_VERSION, VERSION_ATTRIBUTE, VersionedStore

logger = logging.getLogger("store.sql")


class SqlVersionedStore(VersionedStore):
    """
    Versioned store over one ORM model.

    The model must have a ``version`` integer column. Its primary key
    columns are the record key fields.

    Usage:
        store = SqlVersionedStore(User, SessionLocal)
        user = await store.get({"id": "123"})
    """

    def __init__(
        self,
        model: Type[Any],
        session_factory: sessionmaker,
        entity_name: Optional[str] = None,
    ):
        key_fields = [column.key for column in model.__table__.primary_key.columns]
        super().__init__(entity_name or model.__name__.lower(), key_fields)
        self._model = model
        self._session_factory = session_factory
        self._columns = [column.key for column in model.__table__.columns]

    # ========================================================================
    # Internal helpers (run in worker threads)
    # ========================================================================

    def _to_dict(self, obj: Any) -> Dict[str, Any]:
        return {name: getattr(obj, name) for name in self._columns}

    def _key_clauses(self, key: Dict[str, Any]) -> list:
        return [getattr(self._model, field) == key[field] for field in self.key_fields]

    def _get_sync(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            obj = session.execute(
                select(self._model).where(*self._key_clauses(key))
            ).scalar_one_or_none()
            return self._to_dict(obj) if obj is not None else None

    def _patch_sync(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        stmt = (
            update(self._model)
            .where(
                *self._key_clauses(key),
                getattr(self._model, VERSION_ATTRIBUTE) == expected_version,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                session.rollback()
                raise VersionConflictError(self.entity_name, key, expected_version)

            # Read back inside the same transaction so we return exactly what we wrote
            obj = session.execute(
                select(self._model).where(*self._key_clauses(key))
            ).scalar_one()
            record = self._to_dict(obj)
            session.commit()
            return record

    def _create_sync(self, item: Dict[str, Any]) -> Dict[str, Any]:
        key = self.key_of(item)
        record = dict(item)
        record.setdefault(VERSION_ATTRIBUTE, INITIAL_VERSION)

        with self._session_factory() as session:
            if self._exists(session, key):
                raise EntityAlreadyExists(self.entity_name, key)

            obj = self._model(**record)
            session.add(obj)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                # Lost a race on the primary key; other constraint failures propagate
                if self._exists(session, key):
                    raise EntityAlreadyExists(self.entity_name, key) from exc
                raise
            session.refresh(obj)
            return self._to_dict(obj)

    def _exists(self, session: Any, key: Dict[str, Any]) -> bool:
        return session.execute(
            select(self._model).where(*self._key_clauses(key))
        ).first() is not None

    def _delete_sync(self, key: Dict[str, Any]) -> None:
        with self._session_factory() as session:
            session.execute(delete(self._model).where(*self._key_clauses(key)))
            session.commit()

    def _find_by_sync(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(self._model).where(getattr(self._model, attribute) == value)
            ).scalars().all()
            return [self._to_dict(obj) for obj in rows]

    # ========================================================================
    # VersionedStore interface
    # ========================================================================

    async def get(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_sync, key)

    async def conditional_patch(
        self,
        key: Dict[str, Any],
        changes: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        record = await asyncio.to_thread(self._patch_sync, key, changes, expected_version)
        logger.debug(
            f"Patched {self.entity_name} {key} "
            f"(version {expected_version} -> {record.get(VERSION_ATTRIBUTE)})"
        )
        return record

    async def create(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._create_sync, item)

    async def delete(self, key: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def find_by(self, attribute: str, value: Any) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._find_by_sync, attribute, value)
