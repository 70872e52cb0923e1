import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from erros import AppError
from extensions import db
from models import Lembrete, NotificationSetting, NotificationToken, Transaction

logger = logging.getLogger(__name__)

JANELA = timedelta(minutes=10)


def _formatar_data(value: datetime) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def _formatar_brl(value) -> str:
    texto = f"{float(value or 0):,.2f}"
    # 1,234.56 -> 1.234,56
    return "R$ " + texto.replace(",", "_").replace(".", ",").replace("_", ".")


def _nao_notificado(column):
    return or_(column.is_(None), column.is_(False))


def enviar_para_usuario(push, user_id, title, body, data=None) -> list:
    """Envia para todos os tokens do usuário; uma falha não para os demais."""
    results = []
    for token in NotificationToken.query.filter_by(user_id=user_id).all():
        try:
            push.send(token.token, title, body, data)
            results.append({"platform": token.platform, "success": True})
        except AppError as e:
            logger.error("[PUSH] Erro ao enviar para %s: %s", token.platform, e.message)
            results.append({"platform": token.platform, "success": False, "error": e.message})
    return results


def _preferencias(user_id):
    settings = db.session.get(NotificationSetting, user_id)
    sound = (settings.sound_type if settings else None) or "default"
    vibration = True if settings is None or settings.vibration_enabled is None else settings.vibration_enabled
    return sound, vibration


def _notificar(push, user_id, title, body, data) -> bool:
    tokens = NotificationToken.query.filter_by(user_id=user_id).all()
    if not tokens:
        return False
    sound, vibration = _preferencias(user_id)
    for token in tokens:
        push.send(token.token, title, body, data, sound, vibration)
    return True


def verificar_lembretes(push, now: datetime = None) -> dict:
    """Avisa lembretes e agendamentos com data em now ± 10 minutos."""
    now = now or datetime.utcnow()
    inicio, fim = now - JANELA, now + JANELA
    logger.info("[LEMBRETES] Janela de busca %s -> %s", inicio.isoformat(), fim.isoformat())

    reminders = Lembrete.query.filter(
        Lembrete.date >= inicio,
        Lembrete.date <= fim,
        or_(Lembrete.status.is_(None), Lembrete.status != "lembrado"),
        _nao_notificado(Lembrete.notification_sent),
    ).all()

    scheduled = Transaction.query.filter(
        Transaction.formato == "agenda",
        Transaction.status == "pending",
        Transaction.date >= inicio,
        Transaction.date <= fim,
        _nao_notificado(Transaction.notification_sent),
    ).all()

    logger.info("[LEMBRETES] %s lembretes e %s agendamentos para notificar", len(reminders), len(scheduled))
    results = []

    for reminder in reminders:
        body = (
            f"📲 Sua tarefa: {reminder.description or reminder.name or 'Sem descrição'}\n\n"
            f"📆 Agendada para: {_formatar_data(reminder.date)}"
        )
        try:
            if not _notificar(push, reminder.user_id, "🔔 Lembrete AppFinanceiro", body,
                              {"reminderId": reminder.id, "type": "reminder"}):
                results.append({"id": reminder.id, "type": "reminder", "success": False, "error": "Nenhum token"})
                continue
            reminder.notification_sent = True
            reminder.last_notification_at = datetime.utcnow()
            reminder.status = "lembrado"
            db.session.commit()
            results.append({"id": reminder.id, "type": "reminder", "success": True})
        except (AppError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error("[LEMBRETES] Erro no lembrete %s: %s", reminder.id, e)
            results.append({"id": reminder.id, "type": "reminder", "success": False, "error": str(e)})

    for transaction in scheduled:
        label = "💸 Despesa" if transaction.type == "expense" else "💰 Receita"
        body = (
            f"{label}: {transaction.description or 'Sem descrição'}\n"
            f"💵 Valor: {_formatar_brl(transaction.amount)}\n"
            f"📆 Data: {_formatar_data(transaction.date)}"
        )
        data = {
            "transactionId": transaction.id,
            "type": "scheduled_transaction",
            "amount": str(transaction.amount),
            "transactionType": transaction.type,
        }
        try:
            if not _notificar(push, transaction.user_id, "📅 Agendamento Pendente", body, data):
                results.append({"id": transaction.id, "type": "scheduled", "success": False, "error": "Nenhum token"})
                continue
            # Só marca o aviso; o status continua pending
            transaction.notification_sent = True
            transaction.last_notification_at = datetime.utcnow()
            db.session.commit()
            results.append({"id": transaction.id, "type": "scheduled", "success": True})
        except (AppError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error("[LEMBRETES] Erro no agendamento %s: %s", transaction.id, e)
            results.append({"id": transaction.id, "type": "scheduled", "success": False, "error": str(e)})

    return {
        "message": "Processamento concluído",
        "total": len(reminders) + len(scheduled),
        "reminders": len(reminders),
        "scheduled": len(scheduled),
        "results": results,
    }
