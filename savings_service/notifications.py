"""Envío de notificaciones push (Expo) a los dispositivos del usuario.

Las notificaciones son de mejor esfuerzo: se disparan después del commit y
ningún fallo aquí cambia el resultado de una operación.
"""

import os
import re
import logging
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv
from prometheus_client import Counter
from sqlalchemy.orm import Session

from .credentials import CredentialStore

load_dotenv()

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
PUSH_NOTIFICATIONS_ENABLED = os.getenv("PUSH_NOTIFICATIONS_ENABLED", "true").lower() in ("1", "true", "yes")
PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", 5))

EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[.+\]$")

NOTIFICATION_FAILURES = Counter(
    "savings_notifications_failed_total",
    "Notificaciones que fallaron y fueron descartadas",
)


def is_expo_push_token(token: Optional[str]) -> bool:
    return bool(token) and EXPO_TOKEN_RE.match(token) is not None


class NotificationSink:
    """Interfaz del receptor de eventos para el usuario."""

    def send_to_user(self, db: Session, user_id: int, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError


class NullNotifier(NotificationSink):
    """No envía nada; se usa cuando las notificaciones están desactivadas."""

    def send_to_user(self, db, user_id, title, body, data=None):
        logger.debug(f"Notificación omitida para user_id {user_id}: {title}")


class ExpoPushNotifier(NotificationSink):
    """
    Envía mensajes a todos los dispositivos del usuario con token push de Expo.
    Con 'background_tasks' (FastAPI) la llamada HTTP se ejecuta después de
    enviar la respuesta; los tokens se resuelven dentro de la petición.
    """

    def __init__(self, push_url: str = EXPO_PUSH_URL, timeout: float = PUSH_TIMEOUT_SECONDS,
                 client: Optional[httpx.Client] = None, background_tasks=None):
        self.push_url = push_url
        self.timeout = timeout
        self.client = client
        self.background_tasks = background_tasks

    def build_messages(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        messages = []
        for token in tokens:
            if not is_expo_push_token(token):
                logger.error(f"Push token {token} is not a valid Expo push token")
                continue
            messages.append({"to": token, "sound": "default", "title": title, "body": body, "data": data or {}})
        return messages

    def send_to_user(self, db, user_id, title, body, data=None):
        tokens = CredentialStore(db).push_tokens_for_user(user_id)
        messages = self.build_messages(tokens, title, body, data)
        if not messages:
            return
        if self.background_tasks is not None:
            self.background_tasks.add_task(self.deliver, messages, user_id, title)
        else:
            self.deliver(messages, user_id, title)

    def deliver(self, messages: List[Dict[str, Any]], user_id: int, title: str) -> bool:
        """POST al API de Expo. Retorna True si fue exitoso, False si falló."""
        try:
            if self.client is not None:
                response = self.client.post(self.push_url, json=messages, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.push_url, json=messages)
            response.raise_for_status()
            logger.info(f"Notificación '{title}' enviada a {len(messages)} dispositivo(s) de user_id {user_id}")
            return True
        except (httpx.RequestError, httpx.HTTPStatusError) as exc:
            logger.error(f"Error sending notification to user_id {user_id}: {exc}")
            if isinstance(exc, httpx.HTTPStatusError):
                logger.error(f"Respuesta de Expo: {exc.response.text}")
            NOTIFICATION_FAILURES.inc()
            return False


def notify_safely(notifier: Optional[NotificationSink], db: Session, user_id: int, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
    """Invoca al notificador y absorbe cualquier error (solo se registra)."""
    if notifier is None:
        return
    try:
        notifier.send_to_user(db, user_id, title, body, data)
    except Exception as e:
        NOTIFICATION_FAILURES.inc()
        logger.error(f"Error sending '{title}' notification to user_id {user_id}: {e}", exc_info=True)


def default_notifier(background_tasks=None) -> NotificationSink:
    if not PUSH_NOTIFICATIONS_ENABLED:
        return NullNotifier()
    return ExpoPushNotifier(background_tasks=background_tasks)
