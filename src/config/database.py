"""Database Configuration for AnimeMatcher."""

from __future__ import annotations

from pathlib import Path
from types import TracebackType

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src import __file__ as src_file
from src.config.settings import get_config
from src.exceptions import DataPathError

__all__ = ["AnimeMatcherDB", "DBContext", "db"]


class DBContext:
    """Unit of work owning one SQLAlchemy session.

    Every ``with db() as ctx`` block gets its own session so that request
    threads and the job runner never share session state. Uncommitted
    changes are rolled back when the block exits.
    """

    def __init__(self, factory: sessionmaker[Session]) -> None:
        """Create the context; the session is opened lazily."""
        self._factory = factory
        self._session: Session | None = None

    def __enter__(self) -> DBContext:
        """Open the session for this unit of work."""
        self._session = self._factory()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the session opened for this context, if any."""
        if self._session is not None:
            self._session.close()
            self._session = None

    @property
    def session(self) -> Session:
        """Return the current SQLAlchemy session, creating it if needed."""
        if self._session is None:
            self._session = self._factory()
        return self._session


class AnimeMatcherDB:
    """Database manager for the AnimeMatcher application.

    Handles the creation, initialization, and migration of the SQLite database,
    including file system operations and schema management. Uses SQLAlchemy for ORM
    and Alembic for database migrations.

    Calling the instance returns a fresh :class:`DBContext`.
    """

    def __init__(self, data_path: Path) -> None:
        """Initializes the database manager.

        Args:
            data_path (Path): Directory where the database should be stored

        Raises:
            DataPathError: If data_path exists but is a file instead of a directory
        """
        self.data_path = data_path
        self.db_path = data_path / "animematcher.db"
        self.url = f"sqlite:///{self.db_path}"

        self.engine = self._setup_db()
        self._SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._do_migrations()

    def _setup_db(self) -> Engine:
        """Creates the data directory and a SQLAlchemy engine for it.

        Returns:
            Engine: Configured SQLAlchemy engine instance

        Raises:
            DataPathError: If data_path exists but is a file instead of a directory
        """
        import src.models  # noqa: F401

        if self.data_path.is_file():
            raise DataPathError(
                f"{self.__class__.__name__}: The path '{self.data_path}' is a file, "
                "please delete it first or choose a different data folder path",
            )
        self.data_path.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            self.url,
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True,
            future=True,
        )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record):
            cur = dbapi_connection.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
                cur.execute("PRAGMA temp_store=MEMORY;")
                cur.execute("PRAGMA cache_size=-20000;")
                cur.execute("PRAGMA foreign_keys=ON;")
            finally:
                cur.close()

        return engine

    def _do_migrations(self) -> None:
        """Executes pending Alembic migrations against the SQLite file."""
        from alembic import command
        from alembic.config import Config

        cfg = Config()
        cfg.set_main_option(
            "script_location",
            str(Path(src_file).resolve().parent.parent / "alembic"),
        )
        cfg.set_main_option("sqlalchemy.url", self.url)

        command.upgrade(cfg, "head")

    def __call__(self) -> DBContext:
        """Return a new unit of work bound to this database."""
        return DBContext(self._SessionLocal)


db = AnimeMatcherDB(get_config().data_path)
