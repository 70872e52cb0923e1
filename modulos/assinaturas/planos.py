from datetime import datetime, timezone

from models import Plano, Setting

PRICE_KEY_MONTHLY = "stripe_price_id_monthly"
PRICE_KEY_ANNUAL = "stripe_price_id_annual"


def carregar_precos() -> dict:
    """Lê os price ids configurados em poupeja_settings."""
    rows = Setting.query.filter(Setting.key.in_([PRICE_KEY_MONTHLY, PRICE_KEY_ANNUAL])).all()
    return {row.key: row.value for row in rows}


def _first_price(subscription: dict) -> dict:
    items = ((subscription.get("items") or {}).get("data")) or []
    if not items:
        return {}
    return items[0].get("price") or {}


def plan_type_from_interval(subscription: dict) -> str:
    interval = (_first_price(subscription).get("recurring") or {}).get("interval")
    return "annual" if interval == "year" else "monthly"


def plan_type_for(subscription: dict, precos: dict = None) -> str:
    """Price id configurado decide; preço desconhecido cai no intervalo."""
    price_id = _first_price(subscription).get("id")
    precos = precos or {}
    if price_id and price_id == precos.get(PRICE_KEY_MONTHLY):
        return "monthly"
    if price_id and price_id == precos.get(PRICE_KEY_ANNUAL):
        return "annual"
    return plan_type_from_interval(subscription)


def id_plano_para(plan_type: str):
    termo = "%anual%" if plan_type == "annual" else "%mensal%"
    plano = Plano.query.filter(Plano.nome.ilike(termo)).order_by(Plano.id).first()
    if plano is None:
        plano = Plano.query.order_by(Plano.id).first()
    return plano.id if plano else None


def stripe_timestamp(subscription: dict, key: str):
    """Datas do período; versões novas da API movem os campos para o item."""
    value = subscription.get(key)
    if value is None:
        items = ((subscription.get("items") or {}).get("data")) or []
        value = items[0].get(key) if items else None
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc).replace(tzinfo=None)
