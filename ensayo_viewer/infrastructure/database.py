"""Relational storage for test recordings: reference tables and device tables."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, List, Sequence, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Engine,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    inspect,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from ..errors import SourceUnavailable

VALUE_SUFFIX = "_valores"
DESCRIPTION_SUFFIX = "_descripcion"
RESERVED_COLUMNS = ("id", "timestamp", "codigo_ensayo")


class Base(DeclarativeBase):
    pass


class Ensayo(Base):
    __tablename__ = "ensayos"

    codigo_ensayo: Mapped[str] = mapped_column(String(64), primary_key=True)
    descripcion: Mapped[str] = mapped_column(String(255), default="")


def init_engine(database_url: str, *, pool_size: int = 5, echo: bool = False) -> Engine:
    kwargs = {"echo": echo, "future": True}
    if not database_url.startswith("sqlite"):
        kwargs["pool_size"] = pool_size
        kwargs["pool_pre_ping"] = True
    try:
        engine = create_engine(database_url, **kwargs)
        Base.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise SourceUnavailable(f"Cannot open database: {exc}") from exc
    return engine


@contextmanager
def get_session(engine: Engine) -> Generator[Session, None, None]:
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def description_table_name(value_table: str) -> str:
    if value_table.endswith(VALUE_SUFFIX):
        return value_table[: -len(VALUE_SUFFIX)] + DESCRIPTION_SUFFIX
    return value_table + DESCRIPTION_SUFFIX


def device_value_table(metadata: MetaData, name: str, channels: Sequence[str]) -> Table:
    """Declare a device table: one row per sample, one float column per channel."""
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("timestamp", DateTime, index=True, nullable=False),
        Column("codigo_ensayo", String(64), index=True, nullable=False),
        *[Column(channel, Float) for channel in channels],
    )


def device_description_table(metadata: MetaData, value_table: str) -> Table:
    return Table(
        description_table_name(value_table),
        metadata,
        Column("canal_id", Integer, primary_key=True),
        Column("nombre", String(128)),
        Column("unidad", String(32)),
    )


def create_device_tables(
    engine: Engine,
    name: str,
    channels: Sequence[Tuple[str, str, str]],
) -> Table:
    """Create ``name`` and its description table from ``(column, display, unit)`` triples."""
    metadata = MetaData()
    values = device_value_table(metadata, name, [column for column, _, _ in channels])
    descriptions = device_description_table(metadata, name)
    metadata.create_all(engine)
    rows = [
        {"canal_id": idx, "nombre": display, "unidad": unit}
        for idx, (_, display, unit) in enumerate(channels, start=1)
    ]
    if rows:
        with engine.begin() as conn:
            conn.execute(descriptions.delete())
            conn.execute(descriptions.insert(), rows)
    return values


def reflect_table(engine: Engine, name: str) -> Table:
    return Table(name, MetaData(), autoload_with=engine)


def list_tables(engine: Engine) -> List[str]:
    return sorted(inspect(engine).get_table_names())


def list_value_tables(engine: Engine) -> List[str]:
    return [name for name in list_tables(engine) if name.endswith(VALUE_SUFFIX)]


def fetch_ensayos(engine: Engine) -> List[Tuple[str, str]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(Ensayo.codigo_ensayo, Ensayo.descripcion).order_by(Ensayo.codigo_ensayo)
        ).all()
    return [(code, description or "") for code, description in rows]


def upsert_ensayos(engine: Engine, ensayos: Sequence[Tuple[str, str]]) -> None:
    with get_session(engine) as session:
        for code, description in ensayos:
            session.merge(Ensayo(codigo_ensayo=code, descripcion=description))
