"""
Extensões Flask - Configuração Centralizada
==========================================

Este arquivo contém as extensões Flask e o contêiner de serviços externos
usados em toda a aplicação APP FINANCEIRO.
"""

from dataclasses import dataclass
from typing import Callable

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Instância global do SQLAlchemy
db = SQLAlchemy()

# Instância global do Flask-Migrate
migrate = Migrate()

SERVICOS_KEY = "appfinanceiro"


@dataclass
class Servicos:
    """Colaboradores externos construídos uma vez no create_app.

    Os handlers nunca instanciam clientes HTTP por conta própria: pegam
    tudo daqui, o que permite aos testes trocar qualquer peça por um fake.
    """

    auth: "SupabaseAuth"
    stripe: "StripeClient"
    push: "PushSender"
    alocador: Callable[[], "ReferenceCodeAllocator"]


def init_servicos(app, servicos: Servicos) -> None:
    app.extensions[SERVICOS_KEY] = servicos


def get_servicos() -> Servicos:
    return current_app.extensions[SERVICOS_KEY]


# Importar função de configuração (lazy loading)
from config_db import get_database_url


def get_current_db_url():
    """Retorna URL atual do banco"""
    return get_database_url('auto')


# Exportar configurações para uso global
__all__ = [
    'db',
    'migrate',
    'Servicos',
    'init_servicos',
    'get_servicos',
    'get_current_db_url',
]
