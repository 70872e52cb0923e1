#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Integração com o processador de pagamentos (SDK stripe)"""

import json
import logging

import stripe

from erros import AppError, ErrorKind, UpstreamError

logger = logging.getLogger(__name__)


def construct_event(payload, sig_header: str, secret: str, tolerance: int = 300) -> dict:
    """Valida o cabeçalho Stripe-Signature e devolve o evento como dict."""
    if not secret:
        raise AppError(ErrorKind.CONFIG, "STRIPE_WEBHOOK_SECRET não configurado")

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        stripe.WebhookSignature.verify_header(payload, sig_header or "", secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise AppError(ErrorKind.VALIDATION, f"Assinatura do webhook inválida: {e.user_message or e}")

    try:
        return json.loads(payload)
    except ValueError:
        raise AppError(ErrorKind.VALIDATION, "Payload do webhook inválido")


def _para_dict(obj) -> dict:
    # Handlers trabalham com dicts puros, não com StripeObject
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return obj.to_dict_recursive()


class StripeClient:
    """Leituras no processador com a chave secreta da aplicação.

    A chave vai em cada chamada (``api_key=``); nada é gravado no módulo
    global ``stripe``.
    """

    def __init__(self, secret_key, timeout=10):
        self.secret_key = secret_key
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(config.get("STRIPE_SECRET_KEY"))

    def _call(self, descricao: str, func, *args, **kwargs):
        if not self.secret_key:
            raise AppError(ErrorKind.CONFIG, "STRIPE_SECRET_KEY não configurada")
        try:
            return func(*args, api_key=self.secret_key, **kwargs)
        except stripe.StripeError as e:
            logger.error("[STRIPE] %s falhou: %s", descricao, e)
            raise UpstreamError(f"Stripe error: {e.user_message or e}")

    def retrieve_subscription(self, subscription_id: str, expand=None) -> dict:
        kwargs = {"expand": list(expand)} if expand else {}
        subscription = self._call("subscriptions.retrieve", stripe.Subscription.retrieve, subscription_id, **kwargs)
        return _para_dict(subscription)

    def retrieve_customer(self, customer_id: str) -> dict:
        return _para_dict(self._call("customers.retrieve", stripe.Customer.retrieve, customer_id))

    def find_customer_by_email(self, email: str):
        result = self._call("customers.list", stripe.Customer.list, email=email, limit=1)
        return _para_dict(result.data[0]) if result.data else None

    def list_active_subscriptions(self, customer_id: str = None, limit: int = 100) -> list:
        kwargs = {"status": "active", "limit": limit}
        if customer_id:
            kwargs["customer"] = customer_id
        result = self._call("subscriptions.list", stripe.Subscription.list, **kwargs)
        return [_para_dict(s) for s in result.data]
