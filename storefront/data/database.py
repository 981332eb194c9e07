# storefront/data/database.py
"""
Polaczenie z baza i zarzadzanie sesjami.
Engine (pula polaczen) jest jedynym obiektem wspoldzielonym przez proces,
sesja jest tworzona per request i przekazywana jawnie do serwisow.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storefront.utils.settings import DATABASE_URL

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependency FastAPI, jedna sesja na request.
    Sesja jest zamykana po obsludze requestu.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Granica transakcji dla use case'ow.
    Commit przy sukcesie, rollback przy dowolnym wyjatku (i wyjatek leci dalej),
    zeby czesciowe zapisy nigdy nie byly widoczne.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
