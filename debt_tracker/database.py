import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from debt_tracker.core.config import DATABASE_URL, SQL_ECHO
from debt_tracker.core.errors import DebtTrackerError, InternalError

logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=SQL_ECHO, connect_args=connect_args)  # SQL_ECHO=true imprime las queries


def create_db_and_tables():
    import debt_tracker.models  # noqa: F401  registra las tablas en el metadata
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session):
    """Unidad atómica: confirma todo al salir o revierte todo si algo falla.

    Los errores de negocio se propagan tal cual; cualquier error de SQLAlchemy
    se convierte en InternalError después del rollback.
    """
    try:
        yield session
        session.commit()
    except DebtTrackerError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Fallo de almacenamiento, unidad revertida")
        raise InternalError("No se pudo guardar la operación. No se aplicó ningún cambio.") from exc
    except Exception:
        session.rollback()
        raise
