import uuid
from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import UniqueConstraint

from extensions import db

# Nota: as tabelas espelham o esquema da plataforma (poupeja_*, user_roles,
# tbl_planos...). Cada campo é declarado aqui para que divergência de nome
# quebre na hora em vez de gravar lixo.


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.utcnow()


def parse_datetime(value):
    """Aceita datetime, date ou string ISO-8601 (inclusive com sufixo Z)."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp fora do intervalo: {value}") from e
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        # Banco guarda UTC sem fuso
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coerce(column, value):
    if value is None:
        return None
    python_type = column.type.python_type
    if python_type is datetime:
        return parse_datetime(value)
    if python_type is Decimal:
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Valor inválido para {column.name}: {value!r}")
    if python_type is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "t", "yes", "sim")
        return bool(value)
    if python_type is int:
        return int(value)
    if python_type is str:
        return str(value)
    return value


def _to_json(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class TableMixin:
    """Conversão entre payload JSON e colunas declaradas."""

    # Colunas que um update parcial nunca pode sobrescrever
    PROTECTED_COLUMNS = ("id", "created_at")

    @classmethod
    def column_names(cls):
        return [c.name for c in cls.__table__.columns]

    @classmethod
    def from_payload(cls, payload: dict):
        obj = cls()
        obj._apply(payload, protected=())
        return obj

    def apply_update(self, update: dict) -> None:
        self._apply(update, protected=self.PROTECTED_COLUMNS)

    def _apply(self, payload: dict, protected) -> None:
        columns = self.__table__.columns
        unknown = [k for k in payload if k not in columns]
        if unknown:
            raise ValueError(f"Campos desconhecidos para {self.__tablename__}: {', '.join(sorted(unknown))}")
        blocked = [k for k in payload if k in protected]
        if blocked:
            raise ValueError(f"Campos não podem ser alterados: {', '.join(sorted(blocked))}")
        for key, value in payload.items():
            setattr(self, key, _coerce(columns[key], value))

    def to_dict(self) -> dict:
        return {name: _to_json(getattr(self, name)) for name in self.column_names()}


class PoupejaUser(TableMixin, db.Model):
    __tablename__ = "poupeja_users"

    # Mesmo id do usuário na plataforma de auth
    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(255))
    email = db.Column(db.String(255), index=True)
    phone = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<PoupejaUser {self.email}>"


class Subscription(TableMixin, db.Model):
    __tablename__ = "poupeja_subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("poupeja_users.id"), nullable=False, index=True)
    stripe_customer_id = db.Column(db.String(255))
    stripe_subscription_id = db.Column(db.String(255), index=True)
    status = db.Column(db.String(50))
    plan_type = db.Column(db.String(20))  # monthly, annual, basic
    current_period_start = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    cancel_at_period_end = db.Column(db.Boolean, default=False, nullable=False)
    id_plano_preco = db.Column(db.Integer, db.ForeignKey("tbl_planos.id"))
    customer_name = db.Column(db.String(255))
    status_pagamento = db.Column(db.String(20))  # PAGO, TRIAL, PENDENTE
    status_assinatura = db.Column(db.String(20))  # ATIVA, INATIVA
    trial_period = db.Column(db.Boolean, default=False)
    trial_period_days = db.Column(db.Integer)
    trial_period_date = db.Column(db.DateTime)
    conta_teste = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Subscription {self.user_id} {self.status}>"


class Category(TableMixin, db.Model):
    """Categorias de receitas e despesas"""
    __tablename__ = "poupeja_categories"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), index=True)  # nulo = categoria padrão do sistema
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False)  # income ou expense
    icon = db.Column(db.String(100))
    color = db.Column(db.String(20))

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "type": self.type,
        }


class Transaction(TableMixin, db.Model):
    __tablename__ = "poupeja_transactions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)  # income, expense, lembrete...
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    conta = db.Column(db.String(255))
    category_id = db.Column(db.String(64), db.ForeignKey("poupeja_categories.id"))
    description = db.Column(db.Text)
    date = db.Column(db.DateTime, nullable=False, default=_utcnow)
    goal_id = db.Column(db.String(36))
    reference_code = db.Column(db.BigInteger, index=True)
    status = db.Column(db.String(20), default="pending")  # pending, paid
    formato = db.Column(db.String(20))  # "agenda" para agendamentos com aviso
    notification_sent = db.Column(db.Boolean, default=False)
    last_notification_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    category = db.relationship("Category", lazy="joined")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["category"] = self.category.summary() if self.category else None
        return data


class ScheduledTransaction(TableMixin, db.Model):
    __tablename__ = "poupeja_scheduled_transactions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    category_id = db.Column(db.String(64), db.ForeignKey("poupeja_categories.id"))
    description = db.Column(db.Text)
    scheduled_date = db.Column(db.DateTime, nullable=False)
    recurrence = db.Column(db.String(20), default="unica")
    parcela = db.Column(db.String(10))
    situacao = db.Column(db.String(20), default="ativo")
    reference_code = db.Column(db.BigInteger, index=True)
    status = db.Column(db.String(20), default="pending")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    category = db.relationship("Category", lazy="joined")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["category"] = self.category.summary() if self.category else None
        return data


class ReferenceCode(db.Model):
    """Registro de códigos de referência já entregues.

    A chave primária rejeita duplicatas: dois chamadores que calcularem o
    mesmo código concorrentemente não conseguem ambos reservá-lo.
    """
    __tablename__ = "poupeja_reference_codes"

    code = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    origem = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)


class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False)  # admin, user

    def __repr__(self) -> str:  # pragma: no cover
        return f"<UserRole {self.user_id}:{self.role}>"


class Plano(db.Model):
    __tablename__ = "tbl_planos"

    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(255), nullable=False)
    valor = db.Column(db.Numeric(10, 2))


class Setting(db.Model):
    __tablename__ = "poupeja_settings"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text)


class NotificationToken(db.Model):
    __tablename__ = "notification_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    token = db.Column(db.Text, nullable=False)
    platform = db.Column(db.String(20), default="web")  # web, android, ios
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)


class NotificationSetting(db.Model):
    __tablename__ = "notification_settings"

    user_id = db.Column(db.String(36), primary_key=True)
    sound_type = db.Column(db.String(50), default="default")
    vibration_enabled = db.Column(db.Boolean, default=True)


class Lembrete(TableMixin, db.Model):
    __tablename__ = "tbl_lembrete"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(255))
    description = db.Column(db.Text)
    date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), default="pendente")  # pendente, lembrado
    notification_sent = db.Column(db.Boolean, default=False)
    last_notification_at = db.Column(db.DateTime)
