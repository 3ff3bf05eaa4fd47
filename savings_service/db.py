"""Configuración de la conexión a la base de datos usando SQLAlchemy."""

import os
import logging
from sqlalchemy import create_engine, exc
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

# Configuración del logger
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Carga variables de entorno desde el archivo .env
load_dotenv()


def build_database_url() -> str:
    """
    Resuelve la URL de conexión.
    DATABASE_URL tiene prioridad; si no, se arma la URL de MariaDB con DB_*;
    si faltan credenciales se usa un SQLite local para desarrollo.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    required_db_vars = {"DB_USER", "DB_PASS", "DB_HOST", "DB_NAME"}
    missing_vars = required_db_vars - set(os.environ)
    if not missing_vars:
        return f"mysql+pymysql://{os.getenv('DB_USER')}:{os.getenv('DB_PASS')}@{os.getenv('DB_HOST')}/{os.getenv('DB_NAME')}"

    logger.warning(f"Faltan variables de entorno para la base de datos: {', '.join(sorted(missing_vars))}. Usando SQLite local.")
    return "sqlite:///./savings.db"


def create_db_engine(url: str):
    """
    Crea el motor (Engine) de SQLAlchemy.
    En SQLite un escritor concurrente espera el lock (timeout) en vez de fallar.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    # pool_pre_ping=True ayuda a manejar conexiones inactivas en el pool.
    return create_engine(url, pool_pre_ping=True)


SQLALCHEMY_DATABASE_URL = build_database_url()

try:
    engine = create_db_engine(SQLALCHEMY_DATABASE_URL)
except exc.SQLAlchemyError as e:
    logger.error(f"Error al crear el motor de base de datos: {e}", exc_info=True)
    engine = None

# Cada petición web usará su propia sesión.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None

# Clase base para los modelos declarativos (User, Device, Transaction).
Base = declarative_base()


def init_db(bind=None):
    """Crea las tablas si no existen."""
    from . import models  # noqa: F401  registra los modelos en Base.metadata

    Base.metadata.create_all(bind=bind or engine)


# --- Función de Dependencia para FastAPI ---
def get_db():
    """
    Generador de dependencia de FastAPI para obtener una sesión de base de datos.
    Asegura que la sesión se cierre correctamente después de cada petición.
    """
    if SessionLocal is None:
        logger.error("La fábrica de sesiones de base de datos no está inicializada.")
        raise RuntimeError("Database session factory is not initialized")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
