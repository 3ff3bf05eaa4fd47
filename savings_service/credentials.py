"""Almacén de credenciales: usuarios y dispositivos (sin tocar el saldo)."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateEmail
from .models import Device, User

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Acceso a los registros de usuarios y dispositivos.
    Las escrituras se hacen con flush(); el commit lo decide quien orquesta.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, email: str, hashed_password: str) -> User:
        """Crea un usuario con saldo 0. Lanza DuplicateEmail si el email ya existe."""
        if self.find_user_by_email(email) is not None:
            raise DuplicateEmail()
        user = User(email=email, hashed_password=hashed_password, balance_cents=0)
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Otra petición registró el mismo email entre la consulta y el insert
            self.db.rollback()
            raise DuplicateEmail()
        return user

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    def create_device(self, user_id: int, device_id: str, push_token: Optional[str] = None) -> Device:
        """Registra un dispositivo; siempre nace sin verificar."""
        device = Device(user_id=user_id, device_id=device_id, push_token=push_token, is_verified=False)
        self.db.add(device)
        self.db.flush()
        return device

    def find_device(self, user_id: int, device_id: str) -> Optional[Device]:
        return self.db.execute(
            select(Device).where(Device.user_id == user_id, Device.device_id == device_id)
        ).scalar_one_or_none()

    def update_device_push_token(self, device_pk: int, push_token: str) -> bool:
        """Actualiza el token push si cambió. Devuelve True si hubo cambio."""
        device = self.db.get(Device, device_pk)
        if device is None or device.push_token == push_token:
            return False
        device.push_token = push_token
        self.db.flush()
        return True

    def push_tokens_for_user(self, user_id: int) -> list:
        return list(
            self.db.execute(
                select(Device.push_token).where(Device.user_id == user_id, Device.push_token.is_not(None))
                .order_by(Device.id)
            ).scalars()
        )
