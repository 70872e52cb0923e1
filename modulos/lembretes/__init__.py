"""
Módulo de Lembretes - App Financeiro
====================================

Notificações push de lembretes (tbl_lembrete) e de agendamentos pendentes.

Componentes:
- verificacao.py: varredura da janela de aviso e marcação dos itens avisados
- routes.py: funções HTTP (get-vapid-key, send-notification, check-reminders)
"""
