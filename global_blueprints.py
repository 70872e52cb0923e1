from flask import Blueprint, jsonify
from sqlalchemy import text

from administrador.routes import administrador_bp
from extensions import db
from modulos.App_financeiro.api import api_financeiro_bp
from modulos.assinaturas.routes import assinaturas_bp
from modulos.lembretes.routes import lembretes_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return jsonify({"status": "ok", "service": "app-financeiro"})


@main_bp.route("/health")
def health_check():
    """Ping para o balanceador: confirma app e banco."""
    try:
        db.session.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        db.session.rollback()
        database = f"error: {str(e)[:50]}"
    status = 200 if database == "connected" else 503
    return jsonify({"status": "operational" if status == 200 else "degraded", "database": database}), status


def register_blueprints(app):
    """Registra todos os blueprints globais da aplicação."""
    # Home / health
    app.register_blueprint(main_bp)

    # Funções administrativas (guardadas por user_roles)
    app.register_blueprint(administrador_bp)

    # Transações do usuário
    app.register_blueprint(api_financeiro_bp)

    # Planos, assinaturas e webhook de pagamento
    app.register_blueprint(assinaturas_bp)

    # Lembretes e push
    app.register_blueprint(lembretes_bp)
