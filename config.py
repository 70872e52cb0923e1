import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    return v in ("1", "true", "t", "yes", "y", "on", "sim")


def _env_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)).strip())
        return value if value > 0 else default
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'chave_padrao_insegura')

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Plataforma de auth gerenciada
    # - SUPABASE_ANON_KEY: chave pública, usada só para validar o token do chamador
    # - SUPABASE_SERVICE_ROLE_KEY: chave elevada (criar usuário, magic link)
    SUPABASE_URL = (os.getenv('SUPABASE_URL') or '').rstrip('/')
    SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY')
    SUPABASE_SERVICE_ROLE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY')
    SUPABASE_TIMEOUT = _env_int('SUPABASE_TIMEOUT', 10)

    # Push
    # - FCM_SERVICE_ACCOUNT_JSON: JSON da conta de serviço do Firebase (token OAuth gerado a partir dela)
    # - FCM_PROJECT_ID: opcional, sobrepõe o project_id do JSON
    VAPID_PUBLIC_KEY = os.getenv('VAPID_PUBLIC_KEY')
    FCM_SERVICE_ACCOUNT_JSON = os.getenv('FCM_SERVICE_ACCOUNT_JSON')
    FCM_PROJECT_ID = os.getenv('FCM_PROJECT_ID')

    # Pagamentos
    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET')
    STRIPE_WEBHOOK_TOLERANCE = _env_int('STRIPE_WEBHOOK_TOLERANCE', 300)
    # Senha inicial dos usuários criados pelo sync-subscriptions (vazio = senha aleatória)
    DEFAULT_PASSWORD = os.getenv('DEFAULT_PASSWORD')

    # Varredura de lembretes em background
    RODAR_LEMBRETES = _env_bool(os.getenv('RODAR_LEMBRETES'), default=False)
    LEMBRETES_INTERVALO_MIN = _env_int('LEMBRETES_INTERVALO_MIN', 5)

    # Código de referência
    REFERENCE_CODE_MAX_RETRIES = _env_int('REFERENCE_CODE_MAX_RETRIES', 3)
    REFERENCE_CODE_CLAIM_ATTEMPTS = _env_int('REFERENCE_CODE_CLAIM_ATTEMPTS', 5)
