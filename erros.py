"""Erros de domínio e o mapeamento para status HTTP."""

import enum

from flask import jsonify


class ErrorKind(str, enum.Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM = "upstream"
    CONFIG = "config"


STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UPSTREAM: 500,
    ErrorKind.CONFIG: 500,
}


class AppError(Exception):
    """Falha com tipo fechado; a mensagem é texto livre para o usuário."""

    def __init__(self, kind: ErrorKind, message: str, details=None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_response(self, include_success: bool = True):
        body = {"error": self.message, "kind": self.kind.value}
        if include_success:
            body = {"success": False, **body}
        if self.details is not None:
            body["details"] = self.details
        return jsonify(body), self.status_code


class UpstreamError(AppError):
    """Chamada a um serviço externo (auth, Stripe, FCM) falhou."""

    def __init__(self, message: str, details=None):
        super().__init__(ErrorKind.UPSTREAM, message, details)
