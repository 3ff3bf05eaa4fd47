"""Orquestador de autenticación: registro y login con verificación de dispositivo."""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .credentials import CredentialStore
from .errors import DeviceNotRegistered, DeviceNotVerified, InvalidCredentials
from .models import User
from .notifications import NotificationSink, notify_safely
from .utils import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session, notifier: Optional[NotificationSink] = None):
        self.db = db
        self.store = CredentialStore(db)
        self.notifier = notifier

    def register(self, email: str, password: str, device_id: str, push_token: Optional[str] = None) -> User:
        """
        Registra un usuario (saldo 0) y su primer dispositivo sin verificar.
        No emite token: el login exige que un administrador verifique el dispositivo.
        """
        logger.info(f"Registration attempt for email: {email}")
        try:
            user = self.store.create_user(email, get_password_hash(password))
            self.store.create_device(user.id, device_id, push_token)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise e
        self.db.refresh(user)
        logger.info(f"User created with ID: {user.id} for email: {email}")
        return user

    def login(self, email: str, password: str, device_id: str, push_token: Optional[str] = None) -> Tuple[str, User]:
        """
        Valida credenciales y dispositivo; devuelve (token, usuario).
        Email desconocido y contraseña incorrecta producen el mismo error.
        """
        logger.info(f"Login attempt for user: {email}")
        user = self.store.find_user_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            logger.warning(f"Login failed for user: {email}")
            raise InvalidCredentials()

        device = self.store.find_device(user.id, device_id)
        if device is None:
            logger.warning(f"Login rejected for user_id {user.id}: device {device_id} not registered")
            raise DeviceNotRegistered()
        if not device.is_verified:
            logger.warning(f"Login rejected for user_id {user.id}: device {device_id} not verified")
            raise DeviceNotVerified()

        if push_token and push_token != device.push_token:
            # Paso de mejor esfuerzo: un fallo aquí no impide el login
            try:
                self.store.update_device_push_token(device.id, push_token)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"No se pudo actualizar el push token del dispositivo {device.id}: {e}", exc_info=True)

        token = create_access_token(user.id)
        logger.info(f"Login successful for user_id: {user.id}")

        notify_safely(self.notifier, self.db, user.id, "Login Successful", "You have successfully logged in.")
        return token, user
