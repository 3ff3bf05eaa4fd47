"""Ledger: única autoridad sobre el saldo y el registro de transacciones.

Depósitos y retiros se aplican con un UPDATE condicional que hace la
aritmética dentro de la base de datos, y el insert de la transacción viaja en
la misma transacción SQL. Dos operaciones concurrentes sobre el mismo usuario
nunca leen el mismo saldo previo: la segunda espera el lock de escritura y
evalúa su condición contra el saldo ya actualizado.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from .errors import InsufficientBalance, InvalidAmount, UserNotFound
from .models import MAX_AMOUNT, MAX_BALANCE_CENTS, Transaction, TransactionType, User, cents_to_decimal, utcnow
from .notifications import NotificationSink, notify_safely

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Umbral fijo para la alerta de saldo bajo (no configurable)
LOW_BALANCE_THRESHOLD = Decimal("100")


def to_cents(amount) -> int:
    """
    Valida un monto y lo convierte a centavos.
    Debe ser positivo, no superar MAX_AMOUNT y tener como máximo 2 decimales.
    """
    if isinstance(amount, bool):
        raise InvalidAmount()
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        if not value.is_finite() or value <= 0 or value > MAX_AMOUNT or value != value.quantize(CENT):
            raise InvalidAmount()
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount()
    return int(value * 100)


class Ledger:
    def __init__(self, db: Session, notifier: Optional[NotificationSink] = None):
        self.db = db
        self.notifier = notifier

    # --- Lecturas ---

    def get_balance(self, user_id: int) -> Decimal:
        cents = self._balance_cents(user_id)
        if cents is None:
            raise UserNotFound()
        return cents_to_decimal(cents)

    def get_history(self, user_id: int) -> List[Transaction]:
        """Transacciones del usuario, la más reciente primero."""
        if self._balance_cents(user_id) is None:
            raise UserNotFound()
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return list(self.db.execute(stmt).scalars())

    def audit(self, user_id: int) -> bool:
        """Comprueba que el saldo coincida con la suma firmada de las transacciones."""
        signed = case(
            (Transaction.type == TransactionType.DEPOSIT, Transaction.amount_cents),
            else_=-Transaction.amount_cents,
        )
        total = self.db.execute(
            select(func.coalesce(func.sum(signed), 0)).where(Transaction.user_id == user_id)
        ).scalar_one()
        balance = self._balance_cents(user_id)
        if balance is None:
            raise UserNotFound()
        return int(total) == balance

    # --- Mutaciones ---

    def deposit(self, user_id: int, amount) -> Decimal:
        cents = to_cents(amount)
        try:
            # El tope de saldo se evalúa en el mismo UPDATE que acredita
            result = self.db.execute(
                update(User)
                .where(User.id == user_id, User.balance_cents <= MAX_BALANCE_CENTS - cents)
                .values(balance_cents=User.balance_cents + cents, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if self._balance_cents(user_id) is None:
                    raise UserNotFound()
                logger.warning(f"Depósito rechazado para user_id {user_id}: superaría el saldo máximo")
                raise InvalidAmount("Deposit would exceed the maximum balance")
            new_cents = self._append(user_id, TransactionType.DEPOSIT, cents)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise e

        new_balance = cents_to_decimal(new_cents)
        logger.info(f"Depósito de {cents_to_decimal(cents)} aplicado para user_id {user_id}. Nuevo saldo: {new_balance}")

        notify_safely(
            self.notifier, self.db, user_id,
            "Deposit Confirmed",
            f"Your deposit of {cents_to_decimal(cents)} was received. New balance: {new_balance}.",
            {"type": "deposit", "amount": str(cents_to_decimal(cents)), "balance": str(new_balance)},
        )
        return new_balance

    def withdraw(self, user_id: int, amount) -> Decimal:
        cents = to_cents(amount)
        try:
            # La verificación de fondos es parte del mismo UPDATE que debita
            result = self.db.execute(
                update(User)
                .where(User.id == user_id, User.balance_cents >= cents)
                .values(balance_cents=User.balance_cents - cents, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if self._balance_cents(user_id) is None:
                    raise UserNotFound()
                logger.warning(f"Retiro rechazado para user_id {user_id}: fondos insuficientes para {cents_to_decimal(cents)}")
                raise InsufficientBalance()
            new_cents = self._append(user_id, TransactionType.WITHDRAW, cents)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            raise e

        new_balance = cents_to_decimal(new_cents)
        logger.info(f"Retiro de {cents_to_decimal(cents)} aplicado para user_id {user_id}. Nuevo saldo: {new_balance}")

        notify_safely(
            self.notifier, self.db, user_id,
            "Withdrawal Processed",
            f"You withdrew {cents_to_decimal(cents)}. New balance: {new_balance}.",
            {"type": "withdraw", "amount": str(cents_to_decimal(cents)), "balance": str(new_balance)},
        )
        if new_balance < LOW_BALANCE_THRESHOLD:
            notify_safely(
                self.notifier, self.db, user_id,
                "Low Balance",
                f"Your balance is below {LOW_BALANCE_THRESHOLD}. Current balance: {new_balance}.",
                {"type": "low_balance", "balance": str(new_balance)},
            )
        return new_balance

    # --- Auxiliares ---

    def _append(self, user_id: int, tx_type: TransactionType, cents: int) -> int:
        """Inserta la transacción y devuelve el saldo resultante, dentro de la transacción abierta."""
        self.db.add(Transaction(type=tx_type, amount_cents=cents, user_id=user_id))
        self.db.flush()
        return self._balance_cents(user_id)

    def _balance_cents(self, user_id: int) -> Optional[int]:
        return self.db.execute(select(User.balance_cents).where(User.id == user_id)).scalar_one_or_none()
