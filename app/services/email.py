# app/services/email.py
from __future__ import annotations
import logging
from typing import List, Union, Optional
import resend
from app.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.RESEND_API_KEY or ""


def send_email_resend(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    text: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """Envío best effort: nunca lanza, devuelve False si no se pudo enviar."""
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY no configurada, no se envía correo a %s", to)
        return False

    recipients = [to] if isinstance(to, str) else [x for x in (to or []) if x]
    if not recipients:
        logger.warning("Lista de destinatarios vacía, no se envía '%s'", subject)
        return False

    sender = settings.EMAIL_FROM or "ERP Clínico <onboarding@resend.dev>"

    try:
        payload: dict = {
            "from": sender,
            "to": recipients,
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text
        if reply_to:
            payload["reply_to"] = reply_to

        resp = resend.Emails.send(payload)
        # resp puede ser dict o Email; intentamos detectar id o error
        rid = getattr(resp, "id", None) or (isinstance(resp, dict) and resp.get("id"))
        err = getattr(resp, "error", None) or (isinstance(resp, dict) and resp.get("error"))
        if not rid or err:
            logger.error("Fallo el envío de correo a %s: %s", recipients, err or resp)
            return False
        logger.info("Correo '%s' enviado a %s", subject, recipients)
        return True
    except Exception:
        logger.exception("Fallo el envío de correo a %s", recipients)
        return False
