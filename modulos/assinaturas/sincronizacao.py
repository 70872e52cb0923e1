"""Reconciliação de assinaturas com o processador.

Caminho de reparo quando webhooks se perderam: lê as assinaturas ativas no
processador e regrava poupeja_subscriptions, criando o usuário quando o
email do cliente ainda não existe.
"""

import logging
import secrets

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from erros import AppError, ErrorKind
from extensions import db
from models import PoupejaUser

from .handlers import DEFAULT_ID_PLANO_PRECO, dados_da_assinatura, upsert_por_usuario
from .planos import carregar_precos, id_plano_para, plan_type_for

logger = logging.getLogger(__name__)


def _usuario_para(cliente: dict, auth, senha_padrao=None):
    """Usuário do email do cliente; (usuario, criado)."""
    email = cliente["email"]
    user = PoupejaUser.query.filter(func.lower(PoupejaUser.email) == email.lower()).first()
    if user is not None:
        return user, False

    nome = cliente.get("name") or email.split("@")[0]
    senha = senha_padrao or f"temp{secrets.token_urlsafe(12)}"
    auth_user = auth.create_user(email, senha, {"name": nome})
    user = PoupejaUser(id=auth_user["id"], name=nome, email=email)
    db.session.add(user)
    db.session.commit()
    logger.info("[SYNC-SUBSCRIPTIONS] Usuário criado %s", user.id)
    return user, True


def sincronizar_assinaturas(stripe, auth, email: str = None, senha_padrao: str = None) -> dict:
    if email:
        cliente = stripe.find_customer_by_email(email)
        if cliente is None:
            raise AppError(ErrorKind.NOT_FOUND, "Customer not found in Stripe")
        subscriptions = stripe.list_active_subscriptions(cliente["id"], limit=10)
    else:
        subscriptions = stripe.list_active_subscriptions(limit=100)

    logger.info("[SYNC-SUBSCRIPTIONS] %s assinaturas ativas (filtro por email: %s)",
                len(subscriptions), bool(email))
    precos = carregar_precos()
    synced = created = 0

    for subscription in subscriptions:
        try:
            cliente = stripe.retrieve_customer(subscription["customer"])
            if not cliente.get("email"):
                logger.info("[SYNC-SUBSCRIPTIONS] %s sem email de cliente, ignorada", subscription["id"])
                continue

            user, criado = _usuario_para(cliente, auth, senha_padrao)
            created += int(criado)

            plan_type = plan_type_for(subscription, precos)
            id_plano_preco = id_plano_para(plan_type) or DEFAULT_ID_PLANO_PRECO
            upsert_por_usuario(user.id, dados_da_assinatura(subscription, cliente, plan_type, id_plano_preco))
            synced += 1
        except (AppError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error("[SYNC-SUBSCRIPTIONS] Erro na assinatura %s: %s",
                         subscription.get("id"), getattr(e, "message", e))

    return {
        "success": True,
        "totalSubscriptions": len(subscriptions),
        "syncedCount": synced,
        "createdUsersCount": created,
    }
