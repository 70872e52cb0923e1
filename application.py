# application.py
"""
Arquivo de entrada WSGI do APP FINANCEIRO
Gunicorn/uWSGI procuram a variável 'application'
"""

import os
import click
from flask import Flask
from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv

from config import Config
from config_db import get_db_stats
from extensions import db, migrate, get_current_db_url, Servicos, init_servicos
from global_blueprints import register_blueprints
from modulos.App_financeiro.referencia import alocador_do_banco
from push_service import PushSender
from stripe_service import StripeClient
from supabase_auth import SupabaseAuth

# Carregar variáveis de ambiente
load_dotenv()


def _build_servicos(app: Flask) -> Servicos:
    max_retries = app.config.get("REFERENCE_CODE_MAX_RETRIES", 3)
    return Servicos(
        auth=SupabaseAuth.from_config(app.config),
        stripe=StripeClient.from_config(app.config),
        push=PushSender.from_config(app.config),
        alocador=lambda: alocador_do_banco(db.engine, max_retries=max_retries),
    )


def create_app(config_overrides: dict = None) -> Flask:

    app = Flask(__name__)
    app.config.from_object(Config)

    # Configuração do banco usando config_db.py
    app.config['SQLALCHEMY_DATABASE_URI'] = get_current_db_url()

    if config_overrides:
        app.config.update(config_overrides)

    # Inicializar extensões
    db.init_app(app)
    migrate.init_app(app, db)
    init_servicos(app, _build_servicos(app))

    # Registrar todos os blueprints da aplicação
    register_blueprints(app)

    @app.cli.command('init-db')
    def init_db_command():
        """Cria as tabelas no banco configurado e as categorias padrão."""
        from models import Category

        db.create_all()
        padroes = [
            Category(id="other-income", name="Outros", type="income", icon="circle", color="#607D8B"),
            Category(id="other-expense", name="Outros", type="expense", icon="circle", color="#607D8B"),
        ]
        for categoria in padroes:
            if db.session.get(Category, categoria.id) is None:
                db.session.add(categoria)
        db.session.commit()
        click.echo('✅ Banco inicializado com sucesso!')

    @app.cli.command('db-stats')
    def db_stats_command():
        """Mostra estatísticas do banco de dados."""
        stats = get_db_stats(db.engine)
        click.echo(f"📊 Estatísticas do Banco: {stats['type']}")
        click.echo(f"🔗 Status: {stats['status']}")
        if stats.get('tables'):
            click.echo(f"📋 Tabelas: {', '.join(stats['tables'])}")

    @app.cli.command('grant-admin')
    @click.argument('user_id')
    def grant_admin_command(user_id):
        """Concede o papel admin a um usuário (user_roles)."""
        from models import UserRole

        if UserRole.query.filter_by(user_id=user_id, role='admin').first():
            click.echo(f'ℹ️  {user_id} já é admin')
            return
        db.session.add(UserRole(user_id=user_id, role='admin'))
        db.session.commit()
        click.echo(f'✅ {user_id} agora é admin')

    @app.cli.command('revoke-admin')
    @click.argument('user_id')
    def revoke_admin_command(user_id):
        """Remove o papel admin de um usuário."""
        from models import UserRole

        removed = UserRole.query.filter_by(user_id=user_id, role='admin').delete()
        db.session.commit()
        click.echo(f'✅ {removed} papel(is) removido(s) de {user_id}')

    @app.cli.command('check-reminders')
    def check_reminders_command():
        """Executa uma varredura de lembretes e agendamentos."""
        from modulos.lembretes.verificacao import verificar_lembretes
        from extensions import get_servicos

        resultado = verificar_lembretes(get_servicos().push)
        click.echo(f"🔔 {resultado['total']} itens processados "
                   f"({resultado['reminders']} lembretes, {resultado['scheduled']} agendamentos)")

    # Scheduler para a varredura de lembretes (intervalo em LEMBRETES_INTERVALO_MIN)
    def _iniciar_scheduler_lembretes(app: Flask):
        """Inicia o scheduler em background que dispara check-reminders.

        Se RODAR_LEMBRETES estiver desligado, o scheduler NÃO é iniciado.
        """
        if not app.config.get("RODAR_LEMBRETES"):
            app.logger.info("[LEMBRETES] RODAR_LEMBRETES desativado. Scheduler não será iniciado.")
            return None

        # Com o reloader do Flask em debug só o processo filho agenda
        if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
            return None

        # Importação dentro da função para evitar problemas de import circular
        from modulos.lembretes.verificacao import verificar_lembretes
        from extensions import get_servicos

        def _job_lembretes():
            """Wrapper que garante contexto da aplicação na varredura."""
            with app.app_context():
                try:
                    verificar_lembretes(get_servicos().push)
                finally:
                    db.session.remove()

        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            _job_lembretes,
            "interval",
            minutes=app.config.get("LEMBRETES_INTERVALO_MIN", 5),
            id="check_reminders_job",
            replace_existing=True,
        )
        scheduler.start()
        app.extensions["scheduler_lembretes"] = scheduler
        return scheduler

    _iniciar_scheduler_lembretes(app)

    return app


# Instância global usada por WSGI/Gunicorn
application: Flask = create_app()

# Alias para compatibilidade com código que usa "app"
app = application


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    application.run(debug=True, host='0.0.0.0', port=port)
