"""Define los modelos de las tablas 'users', 'devices' y 'transactions' usando SQLAlchemy ORM."""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Topes en centavos; mantienen montos y saldos muy por debajo del rango de BIGINT
MAX_AMOUNT_CENTS = 100_000_000_000
MAX_BALANCE_CENTS = 1_000_000_000_000_000
MAX_AMOUNT = Decimal(MAX_AMOUNT_CENTS) / 100


def cents_to_decimal(cents: int) -> Decimal:
    """Convierte unidades menores (centavos) a Decimal con 2 decimales."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class User(Base):
    """
    Modelo SQLAlchemy que representa la tabla 'users'.
    Almacena credenciales y el saldo de la cuenta de ahorros.
    Solo el Ledger modifica 'balance_cents'.
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_users_balance_non_negative"),
    )

    # Clave primaria autoincremental
    id = Column(Integer, primary_key=True, index=True)

    # Email del usuario, usado como identificador único para el login
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Hash de la contraseña (nunca se almacena en texto plano)
    hashed_password = Column(String(255), nullable=False)

    # Saldo en centavos para evitar errores de redondeo con float
    balance_cents = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    devices = relationship("Device", back_populates="user")

    @property
    def balance(self) -> Decimal:
        return cents_to_decimal(self.balance_cents or 0)


class Device(Base):
    """
    Instalación del cliente asociada a un usuario.
    'is_verified' lo cambia solo un administrador externo (ver admin.py).
    """
    __tablename__ = "devices"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_devices_user_device"),
    )

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(255), nullable=False, index=True)
    push_token = Column(String(255), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="devices")


class TransactionType(str, enum.Enum):
    """Tipo de movimiento; el signo del monto depende del tipo."""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class Transaction(Base):
    """
    Registro inmutable de un movimiento de saldo (solo inserción).
    El monto siempre es positivo.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )

    # Autoincremental: desempata el orden cuando coinciden las marcas de tiempo
    id = Column(Integer, primary_key=True, index=True)
    type = Column(
        SQLEnum(TransactionType, values_callable=lambda e: [m.value for m in e], name="transaction_type"),
        nullable=False,
    )
    amount_cents = Column(BigInteger, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)
