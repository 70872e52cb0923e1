"""
API de transações do usuário - App Financeiro
==============================================

Funções JSON chamadas pelo app (web/mobile) com o token do próprio usuário.
Toda transação nova recebe um código de referência reservado.
"""

import calendar
from datetime import datetime
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse

import requests
from flask import Blueprint, current_app, g, jsonify

from administrador.auth import auth_required, is_admin
from erros import AppError, ErrorKind
from extensions import db
from models import Category, ScheduledTransaction, Transaction, parse_datetime
from respostas import read_json, register_function_hooks

from .referencia import reservar_codigo_referencia

# Blueprint da API
api_financeiro_bp = Blueprint(
    "api_financeiro",
    __name__,
    url_prefix="/functions/v1",
)
register_function_hooks(api_financeiro_bp)

TIPOS_SEM_CATEGORIA = ("lembrete", "reminder")

RECORRENCIA_PT = {
    "once": "unica",
    "daily": "diaria",
    "weekly": "semanal",
    "monthly": "mensal",
    "yearly": "anual",
    "installments": "parcelada",
}


# Limite de parcelas por agendamento (30 anos de parcelas mensais)
MAX_PARCELAS = 360


def _recorrencia(value) -> str:
    return str(value or "once").strip().lower()


def _recorrencia_pt(recurrence) -> str:
    value = _recorrencia(recurrence)
    return RECORRENCIA_PT.get(value, value)


def _shift_month(dt: datetime, delta: int) -> datetime:
    total = (dt.year * 12) + (dt.month - 1) + int(delta)
    year, month = total // 12, (total % 12) + 1
    last = calendar.monthrange(year, month)[1]
    return dt.replace(year=year, month=month, day=min(dt.day, last))


def _categoria_padrao(tipo: str) -> str:
    return "other-income" if tipo == "income" else "other-expense"


def _resolver_categoria(category_id, category_name, tipo: str, allow_none: bool = False):
    """Id existente > busca por (nome, tipo) > categoria "Outros" do tipo."""
    if category_id and db.session.get(Category, category_id) is not None:
        return category_id

    name = category_name or category_id
    if name:
        by_name = Category.query.filter_by(name=name, type=tipo).first()
        if by_name:
            return by_name.id

    if allow_none:
        return None
    return _categoria_padrao(tipo)


def _required(data: dict, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise AppError(ErrorKind.VALIDATION, f"Campos obrigatórios: {', '.join(missing)}")


def _amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise AppError(ErrorKind.VALIDATION, "amount inválido")
    if not amount.is_finite():
        raise AppError(ErrorKind.VALIDATION, "amount inválido")
    return amount


def _date(value, field: str) -> datetime:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise AppError(ErrorKind.VALIDATION, f"{field} inválida")


@api_financeiro_bp.route("/create-transaction", methods=["POST", "OPTIONS"])
@auth_required
def create_transaction():
    data = read_json(required=True)
    _required(data, "type", "amount", "date")
    tipo = str(data["type"]).strip().lower()

    transaction = Transaction(
        user_id=g.usuario["id"],
        type=tipo,
        amount=_amount(data["amount"]),
        conta=data.get("conta"),
        category_id=_resolver_categoria(data.get("category_id"), data.get("category"), tipo),
        description=data.get("description") or "",
        date=_date(data["date"], "date"),
        goal_id=data.get("goalId"),
        status=data.get("status") or "pending",
        formato=data.get("formato"),
    )
    transaction.reference_code = reservar_codigo_referencia("poupeja_transactions")

    db.session.add(transaction)
    db.session.commit()
    current_app.logger.info("[TRANSACOES] %s criada com código %s", transaction.id, transaction.reference_code)
    return jsonify({"success": True, "data": transaction.to_dict()}), 201


@api_financeiro_bp.route("/create-scheduled-transaction", methods=["POST", "OPTIONS"])
@auth_required
def create_scheduled_transaction():
    data = read_json(required=True)
    _required(data, "type", "amount", "scheduledDate")
    tipo = str(data["type"]).strip().lower()

    category_id = _resolver_categoria(
        data.get("category_id"),
        data.get("category"),
        tipo,
        allow_none=tipo in TIPOS_SEM_CATEGORIA,
    )
    start = _date(data["scheduledDate"], "scheduledDate")
    amount = _amount(data["amount"])
    description = data.get("description") or ""

    try:
        installments = int(data.get("installments") or 1)
    except (TypeError, ValueError, OverflowError):
        raise AppError(ErrorKind.VALIDATION, "installments inválido")
    if not 1 <= installments <= MAX_PARCELAS:
        raise AppError(ErrorKind.VALIDATION, f"installments deve estar entre 1 e {MAX_PARCELAS}")
    recurrence = _recorrencia(data.get("recurrence"))
    parcelado = recurrence == "installments" and installments > 1

    total = installments if parcelado else 1
    try:
        datas = [_shift_month(start, i) for i in range(total)]
    except ValueError:
        raise AppError(ErrorKind.VALIDATION, "scheduledDate fora do intervalo para as parcelas")

    # Um código para o agendamento inteiro, compartilhado pelas parcelas
    reference_code = reservar_codigo_referencia("poupeja_scheduled_transactions")

    rows = []
    for i, scheduled_date in enumerate(datas):
        row = ScheduledTransaction(
            user_id=g.usuario["id"],
            type=tipo,
            amount=amount,
            category_id=category_id,
            description=f"{description} ({i + 1}/{total})" if parcelado else description,
            scheduled_date=scheduled_date,
            recurrence=_recorrencia_pt("once" if parcelado else recurrence),
            parcela=str(i + 1) if parcelado else data.get("parcela"),
            situacao=data.get("situacao") or "ativo",
            reference_code=reference_code,
            status="pending",
        )
        rows.append(row)

    db.session.add_all(rows)
    db.session.commit()
    current_app.logger.info("[AGENDAMENTOS] %s registro(s) criados com código %s", len(rows), reference_code)
    items = [r.to_dict() for r in rows]
    return jsonify({"success": True, "data": items[0], "items": items}), 201


@api_financeiro_bp.route("/mark-as-paid", methods=["POST", "OPTIONS"])
@auth_required
def mark_as_paid():
    transaction_id = read_json().get("transactionId")
    if not transaction_id:
        raise AppError(ErrorKind.VALIDATION, "transactionId é obrigatório")

    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise AppError(ErrorKind.NOT_FOUND, "Transação não encontrada")
    if transaction.user_id != g.usuario["id"] and not is_admin(g.usuario["id"]):
        raise AppError(ErrorKind.FORBIDDEN, "Sem permissão para alterar esta transação")

    transaction.status = "paid"
    transaction.updated_at = datetime.utcnow()
    db.session.commit()

    current_app.logger.info("[TRANSACOES] %s marcada como paga", transaction_id)
    return jsonify({
        "success": True,
        "message": "Transação marcada como paga",
        "transaction": transaction.to_dict(),
    })


@api_financeiro_bp.route("/trigger-zapier-webhook", methods=["POST", "OPTIONS"])
@auth_required
def trigger_zapier_webhook():
    data = read_json()
    webhook_url = data.get("webhookUrl")
    if not webhook_url:
        return jsonify({"error": "Webhook URL is required"}), 400
    if urlparse(str(webhook_url)).scheme not in ("http", "https"):
        return jsonify({"error": "Webhook URL must use http or https"}), 400

    transaction = data.get("transactionData") or {}
    payload = {
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "triggered_from": "PoupeJa_App",
        "transaction": {
            "type": transaction.get("type"),
            "description": transaction.get("description"),
            "amount": transaction.get("amount"),
            "category": transaction.get("category"),
            "scheduledDate": transaction.get("scheduledDate"),
            "recurrence": transaction.get("recurrence"),
            "reference_code": transaction.get("reference_code"),
            "phone": transaction.get("phone"),
        },
    }

    try:
        resp = requests.post(webhook_url, json=payload, timeout=10)
    except requests.RequestException as e:
        current_app.logger.error("[ZAPIER] Erro ao chamar webhook: %s", e)
        return jsonify({"error": "Internal server error", "details": str(e)}), 500

    if not resp.ok:
        current_app.logger.error("[ZAPIER] Webhook respondeu %s", resp.status_code)
        return jsonify({
            "error": "Failed to trigger webhook",
            "status": resp.status_code,
            "statusText": resp.reason,
        }), resp.status_code

    current_app.logger.info("[ZAPIER] Webhook disparado para %s", g.usuario["id"])
    return jsonify({"success": True, "message": "Webhook triggered successfully"})
