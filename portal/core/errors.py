"""Erros de dominio do ciclo de vida das solicitacoes.

Os servicos levantam estas excecoes; os routers traduzem para HTTP em
``http_error``. Cada erro carrega um ``code`` estavel para o frontend e uma
mensagem dizendo qual regra foi violada.
"""

from fastapi import HTTPException, status


class PortalError(Exception):
    code = "portal_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationFailed(PortalError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PermissionDenied(PortalError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(PortalError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(PortalError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, requested: str, role: str):
        super().__init__(
            f"Transicao invalida: {current} -> {requested} nao permitida para o perfil {role}"
        )
        self.current = current
        self.requested = requested
        self.role = role

    def to_detail(self) -> dict:
        return {
            **super().to_detail(),
            "current": self.current,
            "requested": self.requested,
            "role": self.role,
        }


class RequestReadOnly(PortalError):
    code = "request_in_trash"
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyConflict(PortalError):
    code = "concurrency_conflict"
    status_code = status.HTTP_409_CONFLICT


class PaymentConfigError(PortalError):
    code = "payment_config_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PaymentGatewayError(PortalError):
    code = "payment_gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, step: str, message: str, status_code: int | None = None):
        super().__init__(f"Falha na etapa '{step}' do processador: {message}")
        self.step = step
        self.remote_status = status_code

    def to_detail(self) -> dict:
        return {**super().to_detail(), "step": self.step}


def http_error(exc: PortalError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
