import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "Portal de Solicitacoes")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ACCESS_TOKEN_EXPIRE_HOURS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "8"))
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(base_dir / 'portal.db').as_posix()}",
        )
        self.ENV: str = os.getenv("ENV", "development")

        default_cors = [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
        cors_origins = os.getenv("BACKEND_CORS_ORIGINS")
        self.BACKEND_CORS_ORIGINS: List[str] = (
            [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
            if cors_origins
            else default_cors
        )

        self.PIX_ENABLED: bool = _flag("PIX_ENABLED")
        self.CARD_GATEWAY_ENABLED: bool = _flag("CARD_GATEWAY_ENABLED")
        self.PAYMENT_ENVIRONMENT: str = os.getenv("PAYMENT_ENVIRONMENT", "sandbox").strip().lower()
        self.PAYMENT_GATEWAY: str = os.getenv("PAYMENT_GATEWAY", "inter").strip().lower()
        self.INTER_CLIENT_ID: str = os.getenv("INTER_CLIENT_ID", "")
        self.INTER_CLIENT_SECRET: str = os.getenv("INTER_CLIENT_SECRET", "")
        self.PIX_KEY: str = os.getenv("PIX_KEY", "")
        self.PAYMENT_CERTS_DIR: str = os.getenv("PAYMENT_CERTS_DIR", str(base_dir / "certs"))
        self.PIX_EXPIRATION_SECONDS: int = int(os.getenv("PIX_EXPIRATION_SECONDS", "3600"))
        self.PAYMENT_HTTP_TIMEOUT: float = float(os.getenv("PAYMENT_HTTP_TIMEOUT", "15"))
        self.PIX_WEBHOOK_SECRET: str = os.getenv("PIX_WEBHOOK_SECRET", "")
        self.SETTLEMENT_POLL_INTERVAL: float = float(os.getenv("SETTLEMENT_POLL_INTERVAL", "2"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


@dataclass(frozen=True)
class PaymentConfig:
    enable_direct_transfer_charge: bool
    enable_card_gateway: bool
    environment: str
    gateway: str
    client_id: str
    client_secret: str
    pix_key: str
    cert_path: Path
    key_path: Path
    expiration_seconds: int = 3600
    timeout: float = 15.0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "PaymentConfig":
        source = source or settings
        certs_dir = Path(source.PAYMENT_CERTS_DIR)
        return cls(
            enable_direct_transfer_charge=source.PIX_ENABLED,
            enable_card_gateway=source.CARD_GATEWAY_ENABLED,
            environment=source.PAYMENT_ENVIRONMENT,
            gateway=source.PAYMENT_GATEWAY,
            client_id=source.INTER_CLIENT_ID,
            client_secret=source.INTER_CLIENT_SECRET,
            pix_key=source.PIX_KEY,
            cert_path=certs_dir / "certificado.crt",
            key_path=certs_dir / "chave.key",
            expiration_seconds=source.PIX_EXPIRATION_SECONDS,
            timeout=source.PAYMENT_HTTP_TIMEOUT,
        )

    @property
    def credentials_present(self) -> bool:
        return bool(self.client_id and self.client_secret and self.pix_key)

    @property
    def certificates_present(self) -> bool:
        return self.cert_path.is_file() and self.key_path.is_file()
