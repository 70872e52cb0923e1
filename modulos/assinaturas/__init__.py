"""
Módulo de Assinaturas - App Financeiro
======================================

Planos, status de assinatura e o webhook do processador de pagamentos.

Componentes:
- planos.py: preços configurados e mapeamento para tbl_planos
- handlers.py: tratamento de cada tipo de evento do webhook
- routes.py: funções HTTP (get-plan-config, check-subscription-status, stripe-webhook)
"""
