#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Envio de push via FCM HTTP v1"""

import json
import logging

import google.auth.exceptions
import google.auth.transport.requests
import requests
from google.oauth2 import service_account

from erros import AppError, ErrorKind, UpstreamError

logger = logging.getLogger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]

# Campos que a conta de serviço precisa ter
CAMPOS_CONTA_SERVICO = ("type", "project_id", "private_key", "client_email")


def carregar_conta_servico(raw):
    """JSON da conta de serviço como dict; ValueError se inválido."""
    info = json.loads(raw)
    if not isinstance(info, dict):
        raise ValueError("conta de serviço deve ser um objeto JSON")
    return info


def diagnosticar_conta_servico(raw) -> dict:
    """Checa o secret da conta de serviço sem expor a chave privada."""
    diagnostico = {
        "secretExists": bool(raw),
        "secretLength": len(raw) if raw else 0,
        "isValidJson": False,
        "fields": {},
        "errors": [],
    }
    if not raw:
        diagnostico["errors"].append("FCM_SERVICE_ACCOUNT_JSON não está configurado")
        return diagnostico

    try:
        info = carregar_conta_servico(raw)
    except ValueError as e:
        diagnostico["errors"].append(f"JSON inválido: {e}")
        return diagnostico
    diagnostico["isValidJson"] = True

    for campo in CAMPOS_CONTA_SERVICO:
        presente = bool(info.get(campo))
        diagnostico["fields"][campo] = {"exists": presente}
        if campo != "private_key" and presente:
            diagnostico["fields"][campo]["value"] = info[campo]
        if not presente:
            diagnostico["errors"].append(f"Campo obrigatório ausente: {campo}")

    if info.get("type") and info["type"] != "service_account":
        diagnostico["errors"].append(f"type deve ser 'service_account', encontrado '{info['type']}'")
    if info.get("private_key") and "BEGIN PRIVATE KEY" not in info["private_key"]:
        diagnostico["errors"].append("private_key não parece uma chave PEM válida")
    return diagnostico


class PushSender:
    """Entrega uma mensagem por token registrado em notification_tokens.

    O token OAuth vem das credenciais da conta de serviço e é renovado
    antes do envio sempre que expira.
    """

    def __init__(self, project_id, credentials, timeout=10, session=None):
        self.project_id = project_id
        self.credentials = credentials
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        raw = config.get("FCM_SERVICE_ACCOUNT_JSON")
        project_id = config.get("FCM_PROJECT_ID")
        credentials = None
        if raw:
            try:
                info = carregar_conta_servico(raw)
                credentials = service_account.Credentials.from_service_account_info(info, scopes=FCM_SCOPES)
                project_id = project_id or info.get("project_id")
            except ValueError as e:
                # Push fica indisponível; o resto da aplicação sobe normalmente
                logger.error("[PUSH] FCM_SERVICE_ACCOUNT_JSON inválido: %s", e)
        return cls(project_id, credentials)

    def _access_token(self) -> str:
        if not self.credentials.valid:
            try:
                self.credentials.refresh(google.auth.transport.requests.Request(session=self.session))
            except google.auth.exceptions.GoogleAuthError as e:
                logger.error("[PUSH] Falha ao renovar token OAuth: %s", e)
                raise UpstreamError(f"Erro ao obter token FCM: {e}")
        return self.credentials.token

    @staticmethod
    def build_message(token, title, body, data=None, sound_type="default", vibration_enabled=True):
        # FCM só aceita strings em "data"
        flat = {
            str(k): v if isinstance(v, str) else json.dumps(v)
            for k, v in (data or {}).items()
        }
        return {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": flat,
                "android": {
                    "priority": "high",
                    "notification": {
                        "sound": sound_type,
                        "default_vibrate_timings": bool(vibration_enabled),
                    },
                },
                "apns": {"payload": {"aps": {"sound": sound_type}}},
                "webpush": {"notification": {"title": title, "body": body}},
            }
        }

    def send(self, token, title, body, data=None, sound_type="default", vibration_enabled=True) -> dict:
        if not self.project_id or self.credentials is None:
            raise AppError(ErrorKind.CONFIG, "FCM_SERVICE_ACCOUNT_JSON não configurado")

        message = self.build_message(token, title, body, data, sound_type, vibration_enabled)
        access_token = self._access_token()
        try:
            response = self.session.post(
                FCM_ENDPOINT.format(project_id=self.project_id),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                json=message,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Erro ao enviar push: {e}")

        if response.status_code != 200:
            logger.error("[PUSH] FCM respondeu %s", response.status_code)
            raise UpstreamError(f"FCM error {response.status_code}: {response.text[:200]}")
        return response.json()
