from functools import wraps

from flask import current_app, g, request

from erros import AppError, ErrorKind
from extensions import get_servicos
from models import UserRole

ADMIN_ROLE = "admin"


def bearer_token():
    """Extrai o token de 'Authorization: Bearer <token>' (None se ausente)."""
    header = request.headers.get("Authorization") or ""
    if not header.strip():
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def resolve_identity() -> dict:
    """Troca o bearer do chamador por uma identidade usando a chave anônima."""
    if not request.headers.get("Authorization"):
        raise AppError(ErrorKind.UNAUTHORIZED, "Unauthorized: No authorization header")

    token = bearer_token()
    user = get_servicos().auth.get_user(token) if token else None
    if not user:
        raise AppError(ErrorKind.UNAUTHORIZED, "Unauthorized: Invalid user session")
    return user


def is_admin(user_id: str) -> bool:
    return UserRole.query.filter_by(user_id=user_id, role=ADMIN_ROLE).first() is not None


def require_admin(user: dict) -> None:
    if not is_admin(user["id"]):
        current_app.logger.warning("[ADMIN] Usuário %s sem papel admin", user["id"])
        raise AppError(ErrorKind.FORBIDDEN, "Forbidden: Admin access required")


def auth_required(f):
    """Decorator para rotas que precisam de um usuário autenticado"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.usuario = resolve_identity()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator para rotas que exigem o papel admin em user_roles"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.usuario = resolve_identity()
        require_admin(g.usuario)
        current_app.logger.info("[ADMIN] Verificação de admin ok para %s", g.usuario["id"])
        return f(*args, **kwargs)
    return decorated_function
