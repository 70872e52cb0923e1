from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from administrador.auth import admin_required, bearer_token
from erros import AppError
from extensions import db, get_servicos
from models import PoupejaUser, Subscription
from respostas import read_json, register_function_hooks
from stripe_service import construct_event

from .handlers import EVENT_HANDLERS
from .planos import PRICE_KEY_ANNUAL, PRICE_KEY_MONTHLY, carregar_precos
from .sincronizacao import sincronizar_assinaturas

assinaturas_bp = Blueprint(
    "assinaturas",
    __name__,
    url_prefix="/functions/v1",
)
register_function_hooks(assinaturas_bp)

# Email de exemplo que a tela de pagamento manda antes do login
PLACEHOLDER_EMAIL = "user@example.com"


@assinaturas_bp.route("/get-plan-config", methods=["GET", "POST", "OPTIONS"])
def get_plan_config():
    precos = carregar_precos()
    current_app.logger.info("[GET-PLAN-CONFIG] Settings fetched (%s)", len(precos))

    if not precos:
        return jsonify({"success": False, "error": "No Stripe price settings found in database"}), 404

    monthly = precos.get(PRICE_KEY_MONTHLY)
    annual = precos.get(PRICE_KEY_ANNUAL)
    if not monthly or not annual:
        return jsonify({
            "success": False,
            "error": "Missing required Stripe price IDs in database",
            "details": {
                "monthly_missing": not monthly,
                "annual_missing": not annual,
            },
        }), 400

    return jsonify({
        "success": True,
        "prices": {
            "monthly": {"priceId": monthly},
            "annual": {"priceId": annual},
        },
    })


def _usuario_da_requisicao(email):
    if email and email != PLACEHOLDER_EMAIL:
        user = PoupejaUser.query.filter(func.lower(PoupejaUser.email) == email.strip().lower()).first()
        if user:
            return {"id": user.id, "email": user.email}, "email"

    token = bearer_token()
    if token:
        auth_user = get_servicos().auth.get_user(token)
        if auth_user and auth_user.get("email"):
            return {"id": auth_user["id"], "email": auth_user["email"]}, "token"

    return None, "none"


@assinaturas_bp.route("/check-subscription-status", methods=["POST", "OPTIONS"])
def check_subscription_status():
    email = read_json().get("email")
    user, metodo = _usuario_da_requisicao(email)

    if user is None:
        current_app.logger.info("[CHECK-SUBSCRIPTION-STATUS] Nenhum usuário encontrado")
        return jsonify({
            "hasActiveSubscription": False,
            "subscription": None,
            "isExpired": False,
            "exists": False,
            "hasSubscription": False,
            "error": "User or subscription not found",
        })

    subscription = Subscription.query.filter_by(user_id=user["id"], status="active").first()
    has_active = subscription is not None
    is_expired = bool(
        subscription
        and subscription.current_period_end
        and datetime.utcnow() > subscription.current_period_end
    )
    active_and_valid = has_active and not is_expired

    current_app.logger.info(
        "[CHECK-SUBSCRIPTION-STATUS] user=%s via %s ativo=%s expirado=%s",
        user["id"], metodo, has_active, is_expired,
    )
    return jsonify({
        "hasActiveSubscription": active_and_valid,
        "subscription": subscription.to_dict() if subscription else None,
        "isExpired": is_expired,
        "exists": True,
        "hasSubscription": active_and_valid,
        "user": user,
    })


@assinaturas_bp.route("/stripe-webhook", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    event = construct_event(
        payload,
        request.headers.get("Stripe-Signature", ""),
        current_app.config.get("STRIPE_WEBHOOK_SECRET"),
        tolerance=current_app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
    )

    event_type = event.get("type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        current_app.logger.info("[STRIPE] Evento ignorado: %s", event_type)
        return jsonify({"received": True})

    try:
        resultado = handler(event, get_servicos().stripe)
    except (AppError, SQLAlchemyError) as e:
        db.session.rollback()
        message = e.message if isinstance(e, AppError) else "Erro ao gravar assinatura"
        current_app.logger.error("[STRIPE] Falha em %s (%s): %s", event_type, event.get("id"), message)
        return jsonify({"error": message}), 500

    current_app.logger.info("[STRIPE] %s processado: %s", event_type, resultado)
    return jsonify({"received": True})


@assinaturas_bp.route("/sync-subscriptions", methods=["POST", "OPTIONS"])
@admin_required
def sync_subscriptions():
    data = read_json()
    if data.get("test"):
        return jsonify({"success": True, "message": "Test successful"})

    servicos = get_servicos()
    resultado = sincronizar_assinaturas(
        servicos.stripe,
        servicos.auth,
        email=(data.get("email") or "").strip() or None,
        senha_padrao=current_app.config.get("DEFAULT_PASSWORD"),
    )
    current_app.logger.info(
        "[SYNC-SUBSCRIPTIONS] %s/%s sincronizadas, %s usuários criados",
        resultado["syncedCount"], resultado["totalSubscriptions"], resultado["createdUsersCount"],
    )
    return jsonify(resultado)
