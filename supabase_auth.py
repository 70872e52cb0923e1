#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Cliente HTTP da plataforma de auth gerenciada (GoTrue)"""

import logging

import requests

from erros import AppError, ErrorKind, UpstreamError

logger = logging.getLogger(__name__)


class SupabaseAuth:
    """Fala com /auth/v1 usando dois níveis de credencial.

    A chave anônima só serve para trocar o bearer do chamador por uma
    identidade; operações administrativas usam a service role key.
    """

    def __init__(self, base_url, anon_key, service_key, timeout=10, session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.anon_key = anon_key
        self.service_key = service_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            config.get("SUPABASE_URL"),
            config.get("SUPABASE_ANON_KEY"),
            config.get("SUPABASE_SERVICE_ROLE_KEY"),
            timeout=config.get("SUPABASE_TIMEOUT", 10),
        )

    def _require(self, *values):
        if not self.base_url or not all(values):
            raise AppError(ErrorKind.CONFIG, "Missing required environment variables")

    def _admin_headers(self):
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    def get_user(self, token: str):
        """Retorna o usuário dono do token ou None se o token não vale."""
        self._require(self.anon_key)
        if not token:
            return None
        try:
            response = self.session.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("[AUTH] Falha ao validar token: %s", e)
            return None

        if response.status_code != 200:
            logger.info("[AUTH] Token recusado (status %s)", response.status_code)
            return None

        user = response.json() or {}
        if not user.get("id"):
            return None
        return user

    def create_user(self, email: str, password: str, metadata: dict = None) -> dict:
        self._require(self.service_key)
        payload = {
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": metadata or {},
        }
        try:
            response = self.session.post(
                f"{self.base_url}/auth/v1/admin/users",
                headers=self._admin_headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Erro ao criar usuário: {e}")

        body = _json_or_empty(response)
        if response.status_code not in (200, 201):
            message = body.get("msg") or body.get("message") or body.get("error_description") or response.text
            raise UpstreamError(f"Erro ao criar usuário: {message}")

        # Versões novas devolvem o usuário direto, as antigas dentro de "user"
        user = body.get("user", body)
        if not user.get("id"):
            raise UpstreamError("Failed to create auth user")
        return user

    def generate_magic_link(self, email: str) -> str:
        self._require(self.service_key)
        try:
            response = self.session.post(
                f"{self.base_url}/auth/v1/admin/generate_link",
                headers=self._admin_headers(),
                json={"type": "magiclink", "email": email},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Erro ao gerar link de login: {e}")

        body = _json_or_empty(response)
        if response.status_code != 200:
            raise UpstreamError("Erro ao gerar link de login", details=body or None)

        link = body.get("action_link") or (body.get("properties") or {}).get("action_link")
        if not link:
            raise UpstreamError("Erro ao gerar link de login")
        return link


def _json_or_empty(response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
