import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from portal.api.v1.auth import router as auth_router
from portal.api.v1.doctor import router as doctor_router
from portal.api.v1.notifications import router as notifications_router
from portal.api.v1.request_types import router as request_types_router
from portal.core.config import settings
from portal.db import models
from portal.db.init_db import seed_initial_data
from portal.db.session import engine
from portal.payments.router import router as payments_router
from portal.payments.router import webhook_router as pix_webhook_router
from portal.requests.router import router as requests_router

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("portal")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Portal de Solicitacoes - ciclo de vida de solicitacoes de servico",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")
        if settings.PIX_ENABLED and not settings.PIX_WEBHOOK_SECRET:
            logger.warning("PIX_WEBHOOK_SECRET vazio: webhook PIX aceita chamadas sem assinatura.")


app.include_router(auth_router, prefix="/api")
app.include_router(request_types_router, prefix="/api")
app.include_router(requests_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(doctor_router, prefix="/api")
app.include_router(pix_webhook_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
