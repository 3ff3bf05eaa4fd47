"""Servicio FastAPI de cuentas de ahorro: registro/login con dispositivos y operaciones de saldo."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import schemas
from .auth import AuthService
from .db import get_db, init_db
from .errors import InvalidInput, InvalidToken, SavingsError
from .ledger import Ledger
from .notifications import NotificationSink, default_notifier
from .utils import verify_token

# Configura logger
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Crea tablas si no existen al iniciar
    try:
        init_db()
        logger.info("Database tables verified/created.")
    except SQLAlchemyError as e:
        logger.error(f"Error initializing database: {e}", exc_info=True)
    yield
    logger.info("Shutting down savings service...")


app = FastAPI(
    title="Savings Service",
    description="Handles registration, device-gated login and savings balance operations.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Métricas Prometheus ---
REQUEST_COUNT = Counter(
    "savings_requests_total",
    "Total requests processed by Savings Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "savings_request_latency_seconds",
    "Request latency in seconds for Savings Service",
    ["endpoint"]
)
DEPOSIT_COUNT = Counter("savings_deposits_total", "Número total de depósitos aplicados")
WITHDRAW_COUNT = Counter("savings_withdrawals_total", "Número total de retiros aplicados")


# --- Middleware para Métricas ---
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"error": "Internal server error"})
    finally:
        latency = time.time() - start_time
        endpoint = request.url.path
        final_status_code = getattr(response, 'status_code', status_code)
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Manejadores de Errores: todo error sale como {"error": mensaje} ---
@app.exception_handler(SavingsError)
async def savings_error_handler(request: Request, exc: SavingsError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Validation error"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return await savings_error_handler(request, InvalidInput(message))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=getattr(exc, "headers", None))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Error de base de datos durante la petición {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal server error"})


# Documenta en OpenAPI el cuerpo {"error": ...} de las respuestas fallidas
ERROR_RESPONSES = {
    400: {"model": schemas.ErrorResponse},
    401: {"model": schemas.ErrorResponse},
}


# --- Dependencias ---
def get_notifier(background_tasks: BackgroundTasks) -> NotificationSink:
    return default_notifier(background_tasks)


def get_current_user_id(authorization: Optional[str] = Header(None)) -> int:
    """Extrae y valida el token 'Authorization: Bearer <token>'."""
    if not authorization or not authorization.startswith("Bearer "):
        logger.warning("Cabecera Authorization ausente o inválida")
        raise InvalidToken("Access denied")
    return verify_token(authorization[len("Bearer "):].strip())


def get_ledger(db: Session = Depends(get_db), notifier: NotificationSink = Depends(get_notifier)) -> Ledger:
    return Ledger(db, notifier)


def get_auth_service(db: Session = Depends(get_db), notifier: NotificationSink = Depends(get_notifier)) -> AuthService:
    return AuthService(db, notifier)


# --- Endpoints de Salud y Métricas ---
@app.get("/", tags=["Monitoring"])
def root():
    return {"message": "Client Backend API"}


@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Monitoring"])
def health_check(db: Session = Depends(get_db)):
    """Performs a basic health check of the service and its database."""
    db_status = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check fallido - Error de BD: {e}", exc_info=True)
        db_status = "error"
    return {"status": "ok" if db_status == "ok" else "degraded", "service": "savings_service", "database": db_status}


# --- Endpoints de Autenticación ---
@app.post("/auth/register", response_model=schemas.RegisterResponse, responses=ERROR_RESPONSES, status_code=status.HTTP_201_CREATED, tags=["Authentication"])
def register(payload: schemas.RegisterRequest, auth: AuthService = Depends(get_auth_service)):
    """
    Registers a new user and binds the first (unverified) device.
    No token is issued: the device must be verified by an administrator first.
    """
    user = auth.register(payload.email, payload.password, payload.device_id, payload.push_token)
    return {"message": "User registered successfully", "user": schemas.UserSummary.model_validate(user)}


@app.post("/auth/login", response_model=schemas.LoginResponse, responses=ERROR_RESPONSES, tags=["Authentication"])
def login(payload: schemas.LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Authenticates email/password from a verified device and returns a JWT."""
    token, user = auth.login(payload.email, payload.password, payload.device_id, payload.push_token)
    return {"token": token, "user": schemas.UserWithBalance.model_validate(user)}


# --- Endpoints de Ahorros ---
@app.get("/savings/balance", response_model=schemas.BalanceResponse, responses=ERROR_RESPONSES, tags=["Savings"])
def get_balance(user_id: int = Depends(get_current_user_id), ledger: Ledger = Depends(get_ledger)):
    return {"balance": ledger.get_balance(user_id)}


@app.post("/savings/deposit", response_model=schemas.BalanceResponse, responses=ERROR_RESPONSES, tags=["Savings"])
def deposit(payload: schemas.AmountRequest, user_id: int = Depends(get_current_user_id), ledger: Ledger = Depends(get_ledger)):
    balance = ledger.deposit(user_id, payload.amount)
    DEPOSIT_COUNT.inc()
    return {"balance": balance}


@app.post("/savings/withdraw", response_model=schemas.BalanceResponse, responses=ERROR_RESPONSES, tags=["Savings"])
def withdraw(payload: schemas.AmountRequest, user_id: int = Depends(get_current_user_id), ledger: Ledger = Depends(get_ledger)):
    balance = ledger.withdraw(user_id, payload.amount)
    WITHDRAW_COUNT.inc()
    return {"balance": balance}


@app.get("/savings/history", response_model=schemas.HistoryResponse, responses=ERROR_RESPONSES, tags=["Savings"])
def get_history(user_id: int = Depends(get_current_user_id), ledger: Ledger = Depends(get_ledger)):
    history = ledger.get_history(user_id)
    return {"history": [schemas.TransactionResponse.model_validate(tx) for tx in history]}
