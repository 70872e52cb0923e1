"""
Configuração Centralizada do Banco de Dados - APP FINANCEIRO
============================================================

Este arquivo centraliza a resolução da URL do banco onde vivem as tabelas
do app (poupeja_*, user_roles, tbl_planos, tbl_lembrete...).

Suporte a múltiplos bancos:
- PostgreSQL (produção - banco gerenciado da plataforma)
- SQLite (desenvolvimento/local/testes)

Uso:
    from config_db import get_database_url, get_db_stats

    url = get_database_url()
"""

import os
from typing import Dict, Any
from urllib.parse import urlparse

from sqlalchemy import inspect
from dotenv import load_dotenv

# Carregar variáveis de ambiente
load_dotenv()

# Configurações padrão
DEFAULT_CONFIG = {
    # PostgreSQL (Produção)
    'postgresql': {
        'host': 'localhost',
        'port': 5432,
        'database': 'postgres',
        'username': 'postgres',
        'password': '',
    },

    # SQLite (Desenvolvimento)
    'sqlite': {
        'database': 'appfinanceiro.db',
    },
}


def _detect_db_type() -> str:
    database_url = os.getenv('DATABASE_URL')
    if not database_url:
        return 'sqlite'
    parsed = urlparse(database_url)
    if parsed.scheme == 'sqlite':
        return 'sqlite'
    # Fallback para PostgreSQL se não reconhecer
    return 'postgresql'


def get_db_config(db_type: str = 'auto') -> Dict[str, Any]:
    """
    Retorna configuração completa do banco de dados.

    Args:
        db_type: Tipo de banco ('postgresql', 'sqlite', 'auto')
    """
    actual_db_type = _detect_db_type() if db_type == 'auto' else db_type
    config = DEFAULT_CONFIG.get(actual_db_type, {}).copy()

    # Sobrescrever com variáveis de ambiente
    if actual_db_type == 'postgresql':
        config.update({
            'host': os.getenv('DB_HOST', config.get('host')),
            'port': int(os.getenv('DB_PORT', config.get('port'))),
            'database': os.getenv('DB_NAME', config.get('database')),
            'username': os.getenv('DB_USER', config.get('username')),
            'password': os.getenv('DB_PASSWORD', config.get('password')),
        })
    elif actual_db_type == 'sqlite':
        config.update({
            'database': os.getenv('SQLITE_DB', config.get('database')),
        })

    config['type'] = actual_db_type
    return config


def get_database_url(db_type: str = 'auto') -> str:
    """
    Retorna a URL de conexão SQLAlchemy.

    Com DATABASE_URL definida ela é usada diretamente; sem ela o SQLite
    fica na pasta instance/ da aplicação.
    """
    if db_type == 'auto':
        database_url = os.getenv('DATABASE_URL')
        if database_url:
            # Plataformas antigas ainda entregam postgres://
            if database_url.startswith('postgres://'):
                database_url = 'postgresql://' + database_url[len('postgres://'):]
            return database_url

    config = get_db_config(db_type)
    if config['type'] == 'postgresql':
        return f"postgresql://{config['username']}:{config['password']}@{config['host']}:{config['port']}/{config['database']}"

    return f"sqlite:///{config['database']}"


def get_db_stats(engine) -> Dict[str, Any]:
    """Retorna estatísticas simples do banco conectado."""
    url = engine.url
    stats = {
        'type': url.get_backend_name(),
        'url': url.render_as_string(hide_password=True),
        'tables': [],
    }
    try:
        stats['tables'] = sorted(inspect(engine).get_table_names())
        stats['status'] = 'connected'
    except Exception as e:
        stats['status'] = f'error: {str(e)}'
    return stats
