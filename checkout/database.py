"""
Checkout - Configuração do Banco de Dados
"""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from checkout.config import settings


def build_engine(url: str, echo: bool = False):
    """Cria o engine; SQLite precisa liberar o uso entre threads."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


# Engine síncrono
engine = build_engine(settings.DATABASE_URL, echo=settings.API_DEBUG)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)

# Base para os models
Base = declarative_base()


def get_db():
    """
    Dependency para injetar sessão do banco de dados.
    Uso: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context():
    """
    Context manager para uso fora de endpoints.
    Uso: with get_db_context() as db:
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """Inicializa o banco de dados (cria tabelas)"""
    import checkout.models  # noqa: F401  registra os models no metadata

    Base.metadata.create_all(bind=engine)
