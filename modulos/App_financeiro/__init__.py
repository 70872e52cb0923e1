"""
Módulo de Transações - App Financeiro
=====================================

Este módulo fornece as funções de transações e agendamentos do usuário e a
numeração compartilhada de códigos de referência.

Componentes:
- api.py: Endpoints JSON chamados pelo app web/mobile
- referencia.py: Alocação e reserva do código de referência
"""

__version__ = "1.0.0"
