"""
Funções administrativas
=======================

Handlers que exigem o papel admin em user_roles antes de qualquer escrita.
A escrita usa a conexão do banco (credencial elevada, ignora políticas por
linha); a identidade do chamador é resolvida com a chave anônima.
"""

import secrets
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from erros import AppError, ErrorKind, UpstreamError
from extensions import db, get_servicos
from models import PoupejaUser, Subscription, Transaction, parse_datetime
from respostas import read_json, register_function_hooks

from .auth import admin_required

administrador_bp = Blueprint(
    'administrador',
    __name__,
    url_prefix='/functions/v1',
)
register_function_hooks(administrador_bp)


def _mutation_failed(prefix: str, err: Exception):
    db.session.rollback()
    current_app.logger.error("[ADMIN] %s: %s", prefix, err)
    return jsonify({"success": False, "error": f"{prefix}: {err}"}), 500


@administrador_bp.route('/create-transaction-admin', methods=['POST', 'OPTIONS'])
@admin_required
def create_transaction_admin():
    transaction_data = request.get_json(silent=True)
    if not transaction_data or not isinstance(transaction_data, dict):
        return jsonify({"success": False, "error": "Transaction data is required"}), 500

    try:
        transaction = Transaction.from_payload(transaction_data)
        db.session.add(transaction)
        db.session.commit()
    except (ValueError, TypeError, SQLAlchemyError) as e:
        return _mutation_failed("Failed to insert transaction", e)

    current_app.logger.info("[ADMIN] Transação %s criada", transaction.id)
    return jsonify({"success": True, "data": transaction.to_dict()}), 200


@administrador_bp.route('/update-transaction-admin', methods=['POST', 'OPTIONS'])
@admin_required
def update_transaction_admin():
    payload = request.get_json(silent=True) or {}
    transaction_id = payload.get("id") if isinstance(payload, dict) else None
    update = payload.get("update") if isinstance(payload, dict) else None

    if not transaction_id or not update or not isinstance(update, dict):
        return jsonify({"success": False, "error": "Both id and update payload are required"}), 500

    try:
        transaction = db.session.get(Transaction, transaction_id)
        if transaction is None:
            raise ValueError(f"transaction {transaction_id} not found")
        transaction.apply_update(update)
        db.session.commit()
    except (ValueError, TypeError, SQLAlchemyError) as e:
        return _mutation_failed("Failed to update transaction", e)

    current_app.logger.info("[ADMIN] Transação %s atualizada", transaction_id)
    return jsonify({"success": True, "data": transaction.to_dict()}), 200


def _row_to_json(row) -> dict:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in row._mapping.items()
    }


def _listar_usuarios(engine):
    stmt = select(
        PoupejaUser.id,
        PoupejaUser.name,
        PoupejaUser.phone,
        PoupejaUser.created_at,
        PoupejaUser.email,
        PoupejaUser.updated_at,
    ).order_by(PoupejaUser.created_at.desc())
    with engine.connect() as conn:
        return [_row_to_json(r) for r in conn.execute(stmt)]


def _listar_assinaturas(engine):
    stmt = select(
        Subscription.user_id,
        Subscription.current_period_end,
        Subscription.status,
        Subscription.plan_type,
        Subscription.cancel_at_period_end,
    )
    with engine.connect() as conn:
        return [_row_to_json(r) for r in conn.execute(stmt)]


@administrador_bp.route('/admin-get-all-users', methods=['GET', 'POST', 'OPTIONS'])
@admin_required
def admin_get_all_users():
    engine = db.engine
    with ThreadPoolExecutor(max_workers=2) as pool:
        users_future = pool.submit(_listar_usuarios, engine)
        subs_future = pool.submit(_listar_assinaturas, engine)

        try:
            users = users_future.result()
        except SQLAlchemyError as e:
            current_app.logger.error("[ADMIN] Erro ao buscar usuários: %s", e)
            return jsonify({"success": False, "error": "Failed to fetch users"}), 500

        try:
            subs = subs_future.result()
        except SQLAlchemyError as e:
            current_app.logger.warning("[ADMIN] Erro ao buscar assinaturas (seguindo sem): %s", e)
            subs = []

    subs_by_user = {}
    for s in subs:
        subs_by_user.setdefault(s["user_id"], s)

    combined = []
    for u in users:
        s = subs_by_user.get(u["id"]) or {}
        combined.append({
            **u,
            "current_period_end": s.get("current_period_end"),
            "status": s.get("status") or "Sem assinatura",
            "plan_type": s.get("plan_type"),
            "cancel_at_period_end": bool(s.get("cancel_at_period_end")),
        })

    return jsonify({"success": True, "users": combined, "total": len(combined)})


@administrador_bp.route('/create-admin-client', methods=['POST', 'OPTIONS'])
@admin_required
def create_admin_client():
    data = read_json()
    name = data.get("name")
    phone = data.get("phone")
    email = (data.get("email") or "").strip()
    if not email:
        return jsonify({"success": False, "error": "Email é obrigatório"}), 400

    try:
        expiration = parse_datetime(data.get("expirationDate")) if data.get("expirationDate") else None
    except (TypeError, ValueError):
        return jsonify({"success": False, "error": "expirationDate inválida"}), 400

    # Senha temporária: o cliente entra por magic link ou redefinição
    temp_password = f"temp{secrets.token_urlsafe(12)}"
    try:
        auth_user = get_servicos().auth.create_user(
            email, temp_password, {"name": name, "phone": phone}
        )
    except UpstreamError as e:
        current_app.logger.error("[ADMIN] Erro ao criar usuário de auth: %s", e.message)
        return jsonify({"success": False, "error": e.message}), 400

    current_app.logger.info("[ADMIN] Usuário de auth criado: %s", auth_user["id"])

    user = PoupejaUser(id=auth_user["id"], name=name, phone=phone, email=email)
    try:
        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error("[ADMIN] Erro ao criar perfil: %s", e)
        return jsonify({"success": False, "error": "Erro ao criar perfil do usuário"}), 400

    now = datetime.utcnow()
    subscription = Subscription(
        user_id=user.id,
        status=data.get("status") or "active",
        plan_type="basic",
        current_period_start=now,
        current_period_end=expiration or now + timedelta(days=30),
    )
    try:
        db.session.add(subscription)
        db.session.commit()
    except SQLAlchemyError as e:
        # O usuário já foi criado; assinatura pode ser ajustada depois
        db.session.rollback()
        current_app.logger.error("[ADMIN] Erro ao criar assinatura: %s", e)

    return jsonify({
        "success": True,
        "message": "Cliente criado com sucesso",
        "user": user.to_dict(),
    }), 200


@administrador_bp.route('/impersonate-user', methods=['POST', 'OPTIONS'])
@admin_required
def impersonate_user():
    email = (read_json().get("email") or "").strip()
    if not email:
        raise AppError(ErrorKind.VALIDATION, "Email é obrigatório")

    login_url = get_servicos().auth.generate_magic_link(email)
    current_app.logger.info("[ADMIN] Magic link gerado por %s", request.remote_addr)
    return jsonify({
        "success": True,
        "loginUrl": login_url,
        "message": "Link de login gerado com sucesso",
    })
