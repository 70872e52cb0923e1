"""Tratamento dos eventos do webhook de pagamentos.

Cada handler recebe o evento já validado e o cliente Stripe, grava em
poupeja_subscriptions e devolve um resumo curto para o log.
"""

import logging
import math

from erros import AppError, ErrorKind
from extensions import db
from models import PoupejaUser, Subscription, parse_datetime

from .planos import carregar_precos, id_plano_para, plan_type_for, plan_type_from_interval, stripe_timestamp

logger = logging.getLogger(__name__)

# id_plano_preco usado quando nenhuma assinatura existente serve de referência
DEFAULT_ID_PLANO_PRECO = 49


def upsert_por_usuario(user_id: str, dados: dict) -> Subscription:
    subscription = Subscription.query.filter_by(user_id=user_id).first()
    if subscription is None:
        logger.info("[STRIPE] Inserindo assinatura para %s", user_id)
        subscription = Subscription(user_id=user_id)
        db.session.add(subscription)
    else:
        logger.info("[STRIPE] Atualizando assinatura %s", subscription.id)
    for key, value in dados.items():
        setattr(subscription, key, value)
    db.session.commit()
    return subscription


def handle_checkout_session_completed(event: dict, stripe) -> str:
    session = event["data"]["object"]
    auth_user_id = (session.get("metadata") or {}).get("user_id")
    if not auth_user_id:
        raise AppError(ErrorKind.VALIDATION, "No user ID in metadata")

    # poupeja_users.id = id do usuário na plataforma de auth
    user = db.session.get(PoupejaUser, auth_user_id)
    if user is None:
        raise AppError(ErrorKind.NOT_FOUND, "User not found in poupeja_users table")

    subscription = stripe.retrieve_subscription(session["subscription"])
    plan_type = plan_type_for(subscription, carregar_precos())

    id_plano_preco = id_plano_para(plan_type)
    if id_plano_preco is None:
        raise AppError(ErrorKind.CONFIG, "Cannot create subscription: no valid id_plano_preco found in tbl_planos")

    upsert_por_usuario(user.id, {
        "stripe_customer_id": session.get("customer"),
        "stripe_subscription_id": session.get("subscription"),
        "status": subscription.get("status"),
        "plan_type": plan_type,
        "current_period_start": stripe_timestamp(subscription, "current_period_start"),
        "current_period_end": stripe_timestamp(subscription, "current_period_end"),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "id_plano_preco": id_plano_preco,
    })
    return f"plan {plan_type}, status {subscription.get('status')}, id_plano_preco {id_plano_preco}"


def _status_pagamento(status: str) -> str:
    if status == "active":
        return "PAGO"
    if status == "trialing":
        return "TRIAL"
    return "PENDENTE"


def _trial(subscription: dict):
    start, end = subscription.get("trial_start"), subscription.get("trial_end")
    if start is None or end is None:
        return False, None, None
    days = math.ceil((int(end) - int(start)) / (60 * 60 * 24))
    return True, days, parse_datetime(int(end))


def dados_da_assinatura(subscription: dict, customer, plan_type: str, id_plano_preco) -> dict:
    """Colunas de poupeja_subscriptions a partir da assinatura no processador."""
    customer = customer or {}
    email = customer.get("email") or ""
    status = subscription.get("status")
    has_trial, trial_days, trial_date = _trial(subscription)

    dados = {
        "stripe_customer_id": subscription.get("customer") or customer.get("id"),
        "stripe_subscription_id": subscription["id"],
        "status": status,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "plan_type": plan_type,
        "id_plano_preco": id_plano_preco,
        "customer_name": customer.get("name") or (email.split("@")[0] if email else None),
        "status_pagamento": _status_pagamento(status),
        "status_assinatura": "ATIVA" if status in ("active", "trialing") else "INATIVA",
        "trial_period": has_trial,
        "trial_period_days": trial_days,
        "trial_period_date": trial_date,
        "conta_teste": not subscription.get("livemode", False),
    }
    for key in ("current_period_start", "current_period_end"):
        value = stripe_timestamp(subscription, key)
        if value is not None:
            dados[key] = value
    return dados


def handle_subscription_updated(event: dict, stripe) -> str:
    event_subscription = event["data"]["object"]
    # O evento pode trazer dados intermediários durante upgrades: busca de novo
    subscription = stripe.retrieve_subscription(event_subscription["id"], expand=["items.data.price"])

    customer = None
    user_id = (subscription.get("metadata") or {}).get("user_id")
    if not user_id and subscription.get("customer"):
        customer = stripe.retrieve_customer(subscription["customer"])
        user_id = (customer.get("metadata") or {}).get("user_id")
    if not user_id:
        existing = Subscription.query.filter_by(stripe_subscription_id=subscription["id"]).first()
        user_id = existing.user_id if existing else None
    if not user_id:
        logger.error("[STRIPE] Nenhum user_id para a assinatura %s", subscription["id"])
        return "ignored: no user"

    user = db.session.get(PoupejaUser, user_id)
    if user is None:
        logger.error("[STRIPE] Usuário %s não existe em poupeja_users", user_id)
        return "ignored: unknown user"

    reference = (
        Subscription.query.filter(Subscription.id_plano_preco.isnot(None))
        .order_by(Subscription.created_at)
        .first()
    )
    id_plano_preco = reference.id_plano_preco if reference else DEFAULT_ID_PLANO_PRECO

    if customer is None and subscription.get("customer"):
        customer = stripe.retrieve_customer(subscription["customer"])

    dados = dados_da_assinatura(subscription, customer, plan_type_from_interval(subscription), id_plano_preco)
    upsert_por_usuario(user.id, dados)
    return f"saved {subscription['id']} ({dados['status']})"


def handle_subscription_deleted(event: dict, stripe) -> str:
    subscription_id = event["data"]["object"]["id"]
    subscription = Subscription.query.filter_by(stripe_subscription_id=subscription_id).first()
    if subscription is None:
        logger.warning("[STRIPE] Assinatura %s removida mas não encontrada", subscription_id)
        return "ignored: unknown subscription"

    subscription.status = "canceled"
    subscription.status_assinatura = "INATIVA"
    db.session.commit()
    return f"canceled {subscription_id}"


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
}
