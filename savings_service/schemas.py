"""Modelos Pydantic (schemas) para validación de datos de entrada/salida del servicio de ahorros."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import MAX_AMOUNT, TransactionType

# --- Schemas de Autenticación ---

class RegisterRequest(BaseModel):
    """Datos requeridos para registrar un usuario y su primer dispositivo."""
    email: EmailStr
    password: str = Field(..., min_length=6, description="La contraseña debe tener al menos 6 caracteres")
    device_id: str = Field(..., alias="deviceId", min_length=1)
    push_token: Optional[str] = Field(None, alias="pushToken")


class LoginRequest(BaseModel):
    """Credenciales de login más el dispositivo desde el que se conecta."""
    email: EmailStr
    password: str = Field(..., min_length=1)
    device_id: str = Field(..., alias="deviceId", min_length=1)
    push_token: Optional[str] = Field(None, alias="pushToken")


class UserSummary(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserWithBalance(UserSummary):
    balance: float


class RegisterResponse(BaseModel):
    message: str
    user: UserSummary


class LoginResponse(BaseModel):
    token: str
    user: UserWithBalance


# --- Schemas de Ahorros ---

class AmountRequest(BaseModel):
    """Monto para depósito o retiro: positivo, acotado y con máximo 2 decimales."""
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT, description="El monto debe ser positivo y no superar 1.000.000.000.")

    @field_validator("amount")
    @classmethod
    def check_precision(cls, v: Decimal) -> Decimal:
        try:
            if v != v.quantize(Decimal("0.01")):
                raise ValueError("Amount must have at most 2 decimal places")
        except InvalidOperation:
            raise ValueError("Amount is out of range")
        return v


class BalanceResponse(BaseModel):
    balance: float


class TransactionResponse(BaseModel):
    """Una transacción del historial (monto siempre positivo; el tipo indica el signo)."""
    id: int
    type: TransactionType
    amount: float
    user_id: int = Field(..., serialization_alias="userId")
    created_at: datetime = Field(..., serialization_alias="createdAt")

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    history: List[TransactionResponse]


class ErrorResponse(BaseModel):
    error: str
