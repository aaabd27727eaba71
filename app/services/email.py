"""Transactional email delivery through the Resend HTTP API."""

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

WEEKDAYS_PT = (
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
)
MONTHS_PT = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)

PRIMARY_COLOR = "#7c3aed"
SUCCESS_COLOR = "#10b981"


@dataclass
class EmailMessage:
    """Rendered email."""

    subject: str
    html: str
    text: str


def format_datetime_pt(moment: datetime, tz_name: Optional[str] = None) -> str:
    """e.g. "sexta-feira, 10 de janeiro de 2025 às 14:30" in the clinic timezone."""
    local = moment.astimezone(ZoneInfo(tz_name or settings.DEFAULT_TIMEZONE))
    return (
        f"{WEEKDAYS_PT[local.weekday()]}, {local.day} de {MONTHS_PT[local.month - 1]} "
        f"de {local.year} às {local:%H:%M}"
    )


def _layout(title: str, body: str, color: str = PRIMARY_COLOR) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body {{ font-family: 'Segoe UI', Arial, sans-serif; background-color: #f5f5f5; margin: 0; padding: 20px; }}
    .container {{ max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden; }}
    .header {{ background: {color}; padding: 30px; text-align: center; }}
    .header h1 {{ color: white; margin: 0; font-size: 28px; }}
    .content {{ padding: 30px; color: #4b5563; line-height: 1.6; }}
    .info-box {{ background: #f3f4f6; border-radius: 8px; padding: 20px; margin: 20px 0; }}
    .button {{ display: inline-block; background: {color}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; margin-top: 20px; }}
    .footer {{ background: #f9fafb; padding: 20px; text-align: center; color: #6b7280; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{html.escape(title)}</h1></div>
    <div class="content">{body}</div>
    <div class="footer">
      <p>CANNEO - Telemedicina Cannabis Medicinal</p>
      <p>Este email foi enviado automaticamente. Nao responda.</p>
    </div>
  </div>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}" class="button">{html.escape(label)}</a>'


# ============================================================================
# Templates
# ============================================================================


def welcome_email(name: str) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/dashboard"
    body = (
        f"<h2>Ola, {html.escape(name)}!</h2>"
        "<p>Seja bem-vindo(a) ao CANNEO, a plataforma de telemedicina especializada em "
        "cannabis medicinal.</p>"
        "<p>Sua conta foi criada com sucesso. Agora voce pode:</p>"
        "<ul><li>Gerenciar seus pacientes</li><li>Realizar teleconsultas</li>"
        "<li>Emitir prescricoes e laudos ANVISA</li></ul>"
        f"{_button(url, 'Acessar Dashboard')}"
    )
    return EmailMessage(
        subject="Bem-vindo ao CANNEO!",
        html=_layout("CANNEO", body),
        text=f"Ola, {name}! Bem-vindo ao CANNEO. Acesse: {url}",
    )


def consultation_reminder_email(
    patient_name: str,
    doctor_name: str,
    scheduled_at: datetime,
    consultation_id: str,
) -> EmailMessage:
    formatted = format_datetime_pt(scheduled_at)
    url = f"{settings.FRONTEND_URL}/my-consultations/{consultation_id}"
    body = (
        f"<p>Ola, {html.escape(patient_name)}!</p>"
        "<p>Este e um lembrete da sua proxima consulta:</p>"
        '<div class="info-box">'
        f"<p><strong>Medico:</strong> {html.escape(doctor_name)}</p>"
        f"<p><strong>Data e Hora:</strong> {formatted}</p>"
        "<p><strong>Tipo:</strong> Teleconsulta</p></div>"
        "<p>Prepare-se para a consulta:</p>"
        "<ul><li>Tenha seus documentos em maos</li><li>Verifique sua conexao de internet</li>"
        "<li>Esteja em um ambiente tranquilo e bem iluminado</li></ul>"
        f"{_button(url, 'Ver Detalhes da Consulta')}"
    )
    return EmailMessage(
        subject=f"Lembrete: Sua consulta esta marcada para {formatted}",
        html=_layout("Lembrete de Consulta", body),
        text=(
            f"Ola, {patient_name}! Lembrete: Sua consulta com {doctor_name} esta marcada "
            f"para {formatted}. Acesse: {url}"
        ),
    )


def prescription_ready_email(
    patient_name: str, product_name: str, prescription_id: str
) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/my-prescriptions/{prescription_id}"
    body = (
        f"<p>Ola, {html.escape(patient_name)}!</p>"
        "<p>Sua prescricao foi assinada e esta disponivel para download.</p>"
        f'<div class="info-box"><p><strong>Medicamento:</strong> {html.escape(product_name)}</p></div>'
        "<p>Acesse seu portal para visualizar e baixar a prescricao.</p>"
        f"{_button(url, 'Ver Prescricao')}"
    )
    return EmailMessage(
        subject="Sua prescricao esta disponivel!",
        html=_layout("Prescricao Disponivel", body, SUCCESS_COLOR),
        text=f"Ola, {patient_name}! Sua prescricao de {product_name} esta disponivel. Acesse: {url}",
    )


def password_reset_email(name: str, reset_token: str) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/auth/reset-password?token={reset_token}"
    body = (
        f"<p>Ola, {html.escape(name)}!</p>"
        "<p>Recebemos uma solicitacao para redefinir sua senha.</p>"
        "<p>Clique no botao abaixo para criar uma nova senha:</p>"
        f"{_button(url, 'Redefinir Senha')}"
        '<div class="info-box"><p><strong>Atencao:</strong> Este link expira em 1 hora.</p>'
        "<p>Se voce nao solicitou a redefinicao de senha, ignore este email.</p></div>"
    )
    return EmailMessage(
        subject="Redefinicao de senha - CANNEO",
        html=_layout("Redefinir Senha", body),
        text=f"Ola, {name}! Acesse o link para redefinir sua senha: {url}. Este link expira em 1 hora.",
    )


def organization_invite_email(
    inviter_name: str, organization_name: str, invite_token: str
) -> EmailMessage:
    url = f"{settings.FRONTEND_URL}/auth/invite?token={invite_token}"
    body = (
        "<p>Ola!</p>"
        f"<p>{html.escape(inviter_name)} convidou voce para fazer parte da equipe no CANNEO.</p>"
        f'<div class="info-box"><p><strong>Organizacao:</strong> {html.escape(organization_name)}</p></div>'
        "<p>Clique no botao abaixo para aceitar o convite e criar sua conta:</p>"
        f"{_button(url, 'Aceitar Convite')}"
    )
    return EmailMessage(
        subject=f"Voce foi convidado para {organization_name} - CANNEO",
        html=_layout("Convite para Equipe", body),
        text=f"{inviter_name} convidou voce para {organization_name} no CANNEO. Aceite o convite: {url}",
    )


def mfa_code_email(name: str, code: str, expires_minutes: int) -> EmailMessage:
    body = (
        f"<p>Ola, {html.escape(name)}!</p>"
        "<p>Use o codigo abaixo para concluir seu login:</p>"
        f'<div class="info-box"><h2 style="letter-spacing: 6px;">{html.escape(code)}</h2></div>'
        f"<p>O codigo expira em {expires_minutes} minutos.</p>"
    )
    return EmailMessage(
        subject="Codigo de verificacao - CANNEO",
        html=_layout("Codigo de Verificacao", body),
        text=f"Ola, {name}! Seu codigo de verificacao e {code}. Expira em {expires_minutes} minutos.",
    )


def email_verification_email(name: str, code: str) -> EmailMessage:
    body = (
        f"<p>Ola, {html.escape(name)}!</p>"
        "<p>Confirme seu email com o codigo abaixo:</p>"
        f'<div class="info-box"><h2 style="letter-spacing: 6px;">{html.escape(code)}</h2></div>'
    )
    return EmailMessage(
        subject="Confirme seu email - CANNEO",
        html=_layout("Confirmacao de Email", body),
        text=f"Ola, {name}! Seu codigo de confirmacao e {code}.",
    )


ANVISA_STATUS_MESSAGES: dict[str, tuple[str, str, str]] = {
    "APPROVED": (
        "Laudo ANVISA Aprovado!",
        "Seu laudo foi aprovado pela ANVISA. Voce ja pode importar seu medicamento.",
        SUCCESS_COLOR,
    ),
    "REJECTED": (
        "Laudo ANVISA Necessita Revisao",
        "Seu laudo precisa de ajustes. Entre em contato com seu medico.",
        "#ef4444",
    ),
    "SUBMITTED": (
        "Laudo ANVISA Enviado",
        "Seu laudo foi enviado para analise da ANVISA. Aguarde a resposta.",
        "#f59e0b",
    ),
}


def anvisa_status_email(patient_name: str, status: str, report_id: str) -> EmailMessage:
    title, message, color = ANVISA_STATUS_MESSAGES.get(
        status,
        ("Atualizacao do Laudo ANVISA", "O status do seu laudo foi atualizado.", PRIMARY_COLOR),
    )
    url = f"{settings.FRONTEND_URL}/my-documents/{report_id}"
    body = (
        f"<p>Ola, {html.escape(patient_name)}!</p><p>{message}</p>"
        f"{_button(url, 'Ver Detalhes')}"
    )
    return EmailMessage(
        subject=title,
        html=_layout(title, body, color),
        text=f"Ola, {patient_name}! {message}",
    )


TEMPLATES: dict[str, Callable[..., EmailMessage]] = {
    "welcome": welcome_email,
    "consultation_reminder": consultation_reminder_email,
    "prescription_ready": prescription_ready_email,
    "password_reset": password_reset_email,
    "organization_invite": organization_invite_email,
    "anvisa_status": anvisa_status_email,
    "mfa_code": mfa_code_email,
    "email_verification": email_verification_email,
}


def render_template(template: str, context: dict[str, Any]) -> EmailMessage:
    """
    Render a named template with keyword context.

    Raises:
        KeyError: If the template name is unknown
    """
    return TEMPLATES[template](**context)


# ============================================================================
# Delivery
# ============================================================================


class EmailService:
    """
    Email sender.

    Without RESEND_API_KEY messages are only logged ("[EMAIL MOCK]") and
    reported as sent.
    """

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self.sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>"

        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - emails will be logged only")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(
        self,
        to: str | list[str],
        subject: str,
        html_body: str,
        text: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> bool:
        """
        Send one email.

        Returns:
            True when delivered (or mocked), False when the provider failed
        """
        if not self.is_configured:
            logger.info(f"[EMAIL MOCK] To: {to}, Subject: {subject}")
            logger.debug(f"[EMAIL MOCK] Body: {text or html_body[:200]}")
            return True

        payload: dict[str, Any] = {
            "from": self.sender,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html_body,
        }
        if text:
            payload["text"] = text
        if reply_to:
            payload["reply_to"] = reply_to

        try:
            async with httpx.AsyncClient(timeout=settings.EMAIL_TIMEOUT) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {response.json().get('id')}")
        return True

    async def send_message(self, to: str, message: EmailMessage) -> bool:
        return await self.send_email(to, message.subject, message.html, message.text)

    async def send_template(self, template: str, to: str, context: dict[str, Any]) -> bool:
        """Render and send a named template."""
        return await self.send_message(to, render_template(template, context))


@lru_cache
def get_email_service() -> EmailService:
    """Get cached email service instance."""
    return EmailService()
