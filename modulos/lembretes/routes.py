from flask import Blueprint, current_app, g, jsonify

from administrador.auth import admin_required, auth_required, is_admin
from erros import AppError, ErrorKind
from extensions import get_servicos
from push_service import diagnosticar_conta_servico
from respostas import read_json, register_function_hooks

from .verificacao import enviar_para_usuario, verificar_lembretes

lembretes_bp = Blueprint(
    "lembretes",
    __name__,
    url_prefix="/functions/v1",
)
register_function_hooks(lembretes_bp)


@lembretes_bp.route("/get-vapid-key", methods=["GET", "POST", "OPTIONS"])
def get_vapid_key():
    public_key = current_app.config.get("VAPID_PUBLIC_KEY")
    if not public_key:
        current_app.logger.error("[PUSH] VAPID_PUBLIC_KEY não configurada")
        return jsonify({"error": "VAPID_PUBLIC_KEY não configurada"}), 500
    return jsonify({"publicKey": public_key})


@lembretes_bp.route("/send-notification", methods=["POST", "OPTIONS"])
@auth_required
def send_notification():
    data = read_json(required=True)
    user_id = data.get("userId")
    title = data.get("title")
    if not user_id or not title:
        raise AppError(ErrorKind.VALIDATION, "userId e title são obrigatórios")
    if user_id != g.usuario["id"] and not is_admin(g.usuario["id"]):
        raise AppError(ErrorKind.FORBIDDEN, "Sem permissão para notificar este usuário")

    results = enviar_para_usuario(get_servicos().push, user_id, title, data.get("body") or "", data.get("data"))
    if not results:
        return jsonify({"message": "Nenhum token de notificação encontrado para este usuário"})
    return jsonify({"success": True, "results": results})


@lembretes_bp.route("/check-reminders", methods=["GET", "POST", "OPTIONS"])
def check_reminders():
    resultado = verificar_lembretes(get_servicos().push)
    current_app.logger.info("[LEMBRETES] %s itens processados", resultado["total"])
    return jsonify(resultado)


@lembretes_bp.route("/check-fcm-config", methods=["GET", "POST", "OPTIONS"])
@admin_required
def check_fcm_config():
    diagnostico = diagnosticar_conta_servico(current_app.config.get("FCM_SERVICE_ACCOUNT_JSON"))

    if not diagnostico["secretExists"]:
        return jsonify({"success": False, "error": "Secret não configurado", "diagnostics": diagnostico}), 500
    if not diagnostico["isValidJson"]:
        return jsonify({"success": False, "error": "JSON inválido", "diagnostics": diagnostico}), 500

    ok = not diagnostico["errors"]
    if not ok:
        current_app.logger.error("[CHECK-FCM-CONFIG] %s", "; ".join(diagnostico["errors"]))
    return jsonify({
        "success": ok,
        "message": "✅ Configuração FCM está correta!" if ok else "❌ Problemas encontrados na configuração FCM",
        "diagnostics": diagnostico,
    }), 200 if ok else 500
