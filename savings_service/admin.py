"""Herramienta administrativa: marca dispositivos como verificados (o revoca la verificación).

Es el actor externo del flujo de verificación; el servicio solo lee el flag.

Uso:
    python -m savings_service.admin usuario@example.com device-123
    python -m savings_service.admin usuario@example.com device-123 --revoke
"""

import argparse
import logging
import sys

from sqlalchemy.orm import Session

from .credentials import CredentialStore
from .db import SessionLocal
from .errors import DeviceNotRegistered, UserNotFound
from .models import Device

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def set_device_verification(db: Session, email: str, device_id: str, verified: bool = True) -> Device:
    store = CredentialStore(db)
    user = store.find_user_by_email(email)
    if user is None:
        raise UserNotFound()
    device = store.find_device(user.id, device_id)
    if device is None:
        raise DeviceNotRegistered()

    device.is_verified = verified
    db.commit()
    db.refresh(device)
    logger.info(f"Dispositivo {device_id} de user_id {user.id} marcado como {'verificado' if verified else 'no verificado'}.")
    return device


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Verifica o revoca un dispositivo de un usuario.")
    parser.add_argument("email")
    parser.add_argument("device_id")
    parser.add_argument("--revoke", action="store_true", help="Quita la verificación en vez de otorgarla")
    args = parser.parse_args(argv)

    if SessionLocal is None:
        logger.critical("La fábrica de sesiones de base de datos no está inicializada.")
        return 2

    db = SessionLocal()
    try:
        set_device_verification(db, args.email, args.device_id, verified=not args.revoke)
    except (UserNotFound, DeviceNotRegistered) as e:
        logger.error(f"No se pudo actualizar el dispositivo: {e.message}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
