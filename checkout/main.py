"""
Checkout - Aplicação Principal FastAPI
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from checkout import __version__
from checkout.config import settings
from checkout.database import init_db
from checkout.exceptions import (
    AcquirerError,
    CryptoFailure,
    EncodingFailure,
    InvalidStateTransition,
    SignatureMismatch,
    TransactionNotFound,
    ValidationError,
)
from checkout.routers import payments_router, webhooks_router

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager da aplicação"""
    logger.info("🚀 Iniciando Checkout API...")

    # Criar tabelas se não existirem (dev only)
    # Em produção, usar migrations
    if settings.API_DEBUG:
        logger.info("📦 Criando tabelas do banco de dados...")
        init_db()

    logger.info("✅ Checkout API iniciada com sucesso!")

    yield

    logger.info("👋 Encerrando Checkout API...")


# Criar aplicação FastAPI
app = FastAPI(
    title="Checkout API",
    description="""
    ## Motor de Transações de Pagamento

    ### Meios de pagamento:

    * **PIX** - QR Code BR Code (copia e cola + imagem)
    * **Boleto** - Código de barras e linha digitável FEBRABAN, PDF para impressão
    * **Cartão** - Crédito (até 12x) e débito, com tokenização

    ### Ciclo de vida:

    * `pending` -> `awaiting_payment` -> `paid` / `failed` / `cancelled` / `expired`
    * Confirmações chegam por webhook assinado (HMAC-SHA256)
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Middleware de logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log de todas as requisições"""
    logger.debug(f"📨 {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"📤 {request.method} {request.url.path} - {response.status_code}")
    return response


# =====================================================
# EXCEPTION HANDLERS
# =====================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "field": exc.field}
    )


@app.exception_handler(TransactionNotFound)
async def not_found_handler(request: Request, exc: TransactionNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateTransition)
async def invalid_state_handler(request: Request, exc: InvalidStateTransition):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "current_status": exc.current_status}
    )


@app.exception_handler(SignatureMismatch)
async def signature_mismatch_handler(request: Request, exc: SignatureMismatch):
    logger.warning(f"Webhook recusado em {request.url.path}: {exc}")
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(AcquirerError)
async def acquirer_error_handler(request: Request, exc: AcquirerError):
    logger.error(f"Erro no adquirente: {exc}", exc_info=exc)
    return JSONResponse(status_code=502, content={"detail": "Falha de comunicação com o adquirente"})


@app.exception_handler(EncodingFailure)
@app.exception_handler(CryptoFailure)
async def internal_failure_handler(request: Request, exc: Exception):
    logger.error(f"❌ Falha interna ({type(exc).__name__}): {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Erro interno ao processar o pagamento"}
    )


# Exception handler global
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handler global de exceções"""
    logger.error(f"❌ Erro não tratado: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Erro interno do servidor"}
    )


# Registrar routers
app.include_router(payments_router)
app.include_router(webhooks_router)


# Endpoints de health check
@app.get("/", tags=["Health"])
async def root():
    """Endpoint raiz"""
    return {
        "name": "Checkout API",
        "version": __version__,
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "database": "connected",
        "version": __version__
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "checkout.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_DEBUG
    )
