"""Errores de dominio del servicio de ahorros.

Cada operación pública lanza exactamente uno de estos tipos; la capa HTTP los
traduce a un status y a un cuerpo {"error": message}.
"""

from fastapi import status


class SavingsError(Exception):
    """Base de todos los errores de negocio."""
    message = "Request failed"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidInput(SavingsError):
    message = "Invalid input"


class DuplicateEmail(SavingsError):
    message = "Email already registered"


class InvalidCredentials(SavingsError):
    message = "Invalid email or password"
    status_code = status.HTTP_401_UNAUTHORIZED


class DeviceNotRegistered(SavingsError):
    message = "Device not registered"
    status_code = status.HTTP_401_UNAUTHORIZED


class DeviceNotVerified(SavingsError):
    message = "Device not verified"
    status_code = status.HTTP_401_UNAUTHORIZED


class UserNotFound(SavingsError):
    message = "User not found"


class InvalidAmount(SavingsError):
    message = "Amount must be a positive value with at most 2 decimal places"


class InsufficientBalance(SavingsError):
    message = "Insufficient balance"


class InvalidToken(SavingsError):
    message = "Invalid or expired token"
    status_code = status.HTTP_401_UNAUTHORIZED
