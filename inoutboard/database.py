import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    String,
    create_engine,
    delete,
    event,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from inoutboard.errors import PersistenceError
from inoutboard.models import PRESENT, Group, Person, Resource

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]


class Base(DeclarativeBase):
    pass


class ResourceRow(Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class PersonRow(Base):
    __tablename__ = "persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    group: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=PRESENT, server_default=PRESENT
    )
    comment: Mapped[str] = mapped_column(
        String, nullable=False, default="", server_default=""
    )
    estimated_return: Mapped[str] = mapped_column(
        String, nullable=False, default="", server_default=""
    )
    resource_id: Mapped[int | None] = mapped_column(
        ForeignKey("resources.id"), nullable=True, index=True
    )
    last_changed: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GroupRow(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)


def create_db_engine(url: str) -> Engine:
    """Engine for ``url``; SQLite connections get WAL and foreign keys on."""
    connect_args: dict[str, Any] = {}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        # handlers run on the event loop thread, test clients on another
        connect_args["check_same_thread"] = False
    engine = create_engine(url, connect_args=connect_args)

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables and seed groups from the groups persons already use."""
    Base.metadata.create_all(engine)
    with Session(engine) as session, session.begin():
        known = set(session.scalars(select(GroupRow.name)))
        used = set(session.scalars(select(PersonRow.group).distinct()))
        for name in sorted(used - known):
            session.add(GroupRow(name=name))
        if used - known:
            logger.info("seeded %d group(s) from roster", len(used - known))


class Store:
    """
    Synchronous-per-call access to the persisted roster.

    Each public method runs in its own transaction: a mutation either fully
    commits or leaves nothing behind, and the session is closed on every
    exit path. Reads that return a Person include the joined resource name.
    """

    def __init__(self, engine: Engine, *, now_fn: NowFn | None = None) -> None:
        self._engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)
        self.now_fn: NowFn = now_fn or (lambda: datetime.now(UTC))

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("store call failed")
            raise PersistenceError(str(exc)) from exc

    # persons

    def list_persons(self) -> list[Person]:
        with self._session() as session:
            rows = session.execute(
                _person_select().order_by(PersonRow.name, PersonRow.id)
            ).all()
            return [_to_person(row, resource_name) for row, resource_name in rows]

    def get_person(self, person_id: int) -> Person | None:
        with self._session() as session:
            return _load_person(session, person_id)

    def create_person(self, fields: dict[str, Any]) -> Person:
        """Insert a person, registering its group if the board has not seen it."""
        with self._session() as session:
            row = PersonRow(**fields, last_changed=self.now_fn())
            session.add(row)
            _ensure_group(session, row.group)
            session.flush()
            return _reload_person(session, row.id)

    def update_person(self, person_id: int, fields: dict[str, Any]) -> Person | None:
        with self._session() as session:
            result = session.execute(
                update(PersonRow)
                .where(PersonRow.id == person_id)
                .values(**fields, last_changed=self.now_fn())
            )
            if result.rowcount == 0:
                return None
            if "group" in fields:
                _ensure_group(session, fields["group"])
            return _reload_person(session, person_id)

    def delete_person(self, person_id: int) -> bool:
        with self._session() as session:
            result = session.execute(delete(PersonRow).where(PersonRow.id == person_id))
            return result.rowcount > 0

    # resources

    def list_resources(self) -> list[Resource]:
        with self._session() as session:
            rows = session.scalars(
                select(ResourceRow).order_by(ResourceRow.name, ResourceRow.id)
            )
            return [_to_resource(row) for row in rows]

    def get_resource(self, resource_id: int) -> Resource | None:
        with self._session() as session:
            row = session.get(ResourceRow, resource_id)
            return _to_resource(row) if row is not None else None

    def create_resource(self, fields: dict[str, Any]) -> Resource:
        with self._session() as session:
            row = ResourceRow(**fields)
            session.add(row)
            session.flush()
            return _to_resource(row)

    def update_resource(self, resource_id: int, fields: dict[str, Any]) -> Resource | None:
        with self._session() as session:
            result = session.execute(
                update(ResourceRow).where(ResourceRow.id == resource_id).values(**fields)
            )
            if result.rowcount == 0:
                return None
            return _to_resource(session.get_one(ResourceRow, resource_id))

    def delete_resource(self, resource_id: int) -> list[int] | None:
        """
        Delete a resource, clearing it from every person first.

        Returns the ids of the persons that referenced it (ascending), or
        None if the resource does not exist. Both steps share one transaction.
        """
        with self._session() as session:
            if session.get(ResourceRow, resource_id) is None:
                return None
            affected = self._clear_resource(session, resource_id)
            session.execute(delete(ResourceRow).where(ResourceRow.id == resource_id))
            return affected

    def clear_resource_from_persons(self, resource_id: int) -> list[int]:
        with self._session() as session:
            return self._clear_resource(session, resource_id)

    def _clear_resource(self, session: Session, resource_id: int) -> list[int]:
        affected = list(
            session.scalars(
                select(PersonRow.id)
                .where(PersonRow.resource_id == resource_id)
                .order_by(PersonRow.id)
            )
        )
        if affected:
            session.execute(
                update(PersonRow)
                .where(PersonRow.id.in_(affected))
                .values(resource_id=None, last_changed=self.now_fn())
            )
        return affected

    # groups

    def list_groups(self) -> list[Group]:
        with self._session() as session:
            rows = session.scalars(select(GroupRow).order_by(GroupRow.name))
            return [Group(id=row.id, name=row.name) for row in rows]

    def group_exists(self, name: str) -> bool:
        with self._session() as session:
            found = session.scalar(select(GroupRow.id).where(GroupRow.name == name))
            return found is not None

    def create_group(self, fields: dict[str, Any]) -> Group:
        with self._session() as session:
            row = GroupRow(**fields)
            session.add(row)
            session.flush()
            return Group(id=row.id, name=row.name)

    def delete_group(self, group_id: int) -> bool:
        with self._session() as session:
            result = session.execute(delete(GroupRow).where(GroupRow.id == group_id))
            return result.rowcount > 0

    def replace_roster(self, people: list[dict[str, Any]]) -> int:
        """Drop every person and insert ``people`` in a single transaction."""
        with self._session() as session:
            session.execute(delete(PersonRow))
            now = self.now_fn()
            session.add_all(PersonRow(**fields, last_changed=now) for fields in people)
            known = set(session.scalars(select(GroupRow.name)))
            for name in sorted({p["group"] for p in people} - known):
                session.add(GroupRow(name=name))
            return len(people)


def _person_select():
    return select(PersonRow, ResourceRow.name).outerjoin(
        ResourceRow, PersonRow.resource_id == ResourceRow.id
    )


def _load_person(session: Session, person_id: int) -> Person | None:
    found = session.execute(_person_select().where(PersonRow.id == person_id)).first()
    if found is None:
        return None
    row, resource_name = found
    return _to_person(row, resource_name)


def _reload_person(session: Session, person_id: int) -> Person:
    found = session.execute(
        _person_select()
        .where(PersonRow.id == person_id)
        .execution_options(populate_existing=True)
    ).first()
    if found is None:
        raise PersistenceError(f"person {person_id} vanished mid-transaction")
    row, resource_name = found
    return _to_person(row, resource_name)


def _ensure_group(session: Session, name: str) -> None:
    if session.scalar(select(GroupRow.id).where(GroupRow.name == name)) is None:
        session.add(GroupRow(name=name))
        logger.info("registered new group %r", name)


def _to_person(row: PersonRow, resource_name: str | None) -> Person:
    last_changed = row.last_changed
    if last_changed.tzinfo is None:
        last_changed = last_changed.replace(tzinfo=UTC)
    return Person(
        id=row.id,
        name=row.name,
        group=row.group,
        status=row.status,
        comment=row.comment,
        estimated_return=row.estimated_return,
        resource_id=row.resource_id,
        resource_name=resource_name,
        last_changed=last_changed,
    )


def _to_resource(row: ResourceRow) -> Resource:
    return Resource(id=row.id, name=row.name)
