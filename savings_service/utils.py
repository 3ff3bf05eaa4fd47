"""Funciones de utilidad: hash de contraseñas y emisión/verificación de tokens JWT."""

import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.context import CryptContext

from .errors import InvalidToken

# Carga variables de entorno desde .env
load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuración de Seguridad ---
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not SECRET_KEY:
    logger.warning("JWT_SECRET_KEY no está definida en las variables de entorno. Usando clave insegura por defecto para desarrollo.")
    SECRET_KEY = "clave_secreta_insegura_por_defecto_cambiar_urgentemente"

ALGORITHM = "HS256"

# Ventana de validez del token: 1 hora
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica una contraseña plana contra un hash almacenado."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Hash con formato desconocido
        logger.warning("Hash de contraseña almacenado con formato no reconocido.")
        return False


def get_password_hash(password: str) -> str:
    """Genera el hash de una contraseña plana."""
    return pwd_context.hash(password)


# --- Utilidades para Tokens JWT ---
def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Genera un token de acceso JWT para el usuario.

    Args:
        user_id: ID del usuario; se guarda como 'sub'.
        expires_delta: Validez del token (por defecto ACCESS_TOKEN_EXPIRE_MINUTES).

    Returns:
        String del JWT codificado.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user_id), "iat": now, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict]:
    """
    Decodifica y valida un token JWT.

    Returns:
        El payload si el token es válido y no ha expirado; None en caso contrario.
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Fallo en decodificación de token: {e}")
        return None


def verify_token(token: str) -> int:
    """Devuelve el user_id del token o lanza InvalidToken (malformado, firma inválida o expirado)."""
    payload = decode_token(token)
    if payload is None or "sub" not in payload:
        raise InvalidToken()
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        logger.warning("Payload del token inválido ('sub' no es un ID válido)")
        raise InvalidToken()
