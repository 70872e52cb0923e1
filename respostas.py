"""
Respostas HTTP compartilhadas pelas funções
===========================================

Todas as funções expostas em /functions/v1 respondem com os mesmos
cabeçalhos CORS e convertem AppError no envelope JSON.
"""

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from erros import AppError, ErrorKind
from extensions import db

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


def _cors_preflight():
    return current_app.response_class(status=200, headers=CORS_HEADERS)


def _cors_wrap(resp):
    for key, value in CORS_HEADERS.items():
        resp.headers.setdefault(key, value)
    return resp


def _handle_app_error(err: AppError):
    # 401/403 do guard respondem só {"error": ...}
    include_success = err.kind not in (ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN)
    if err.status_code >= 500:
        current_app.logger.error("[FUNCOES] %s %s: %s", request.method, request.path, err.message)
    return err.to_response(include_success=include_success)


def _handle_db_error(err: SQLAlchemyError):
    db.session.rollback()
    current_app.logger.exception("[FUNCOES] Erro de banco em %s", request.path)
    return jsonify({"success": False, "error": "Erro interno do servidor", "kind": ErrorKind.UPSTREAM.value}), 500


def register_function_hooks(bp):
    """Liga preflight, CORS e tratamento de erros a um blueprint de funções."""

    @bp.before_request
    def _preflight():
        if request.method == "OPTIONS":
            return _cors_preflight()
        return None

    @bp.after_request
    def _cors(resp):
        return _cors_wrap(resp)

    bp.register_error_handler(AppError, _handle_app_error)
    bp.register_error_handler(SQLAlchemyError, _handle_db_error)
    return bp


def read_json(required: bool = False) -> dict:
    """Corpo JSON da requisição; corpo ausente vira {} (ou erro se required)."""
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise AppError(ErrorKind.VALIDATION, "Corpo JSON é obrigatório")
        return {}
    if not isinstance(data, dict):
        raise AppError(ErrorKind.VALIDATION, "Corpo JSON deve ser um objeto")
    return data
