import smtplib
from email.message import EmailMessage

from flask import current_app

SUBJECTS = {
    "booking.created": "New booking request on your parking slot",
    "booking.confirmed": "Your parking booking is confirmed",
    "booking.cancelled": "A parking booking was cancelled",
}


def _body(event: str, payload: dict) -> str:
    lines = [SUBJECTS.get(event, event), ""]
    for key in ("booking_id", "slot_id", "status", "start_time", "end_time", "cancelled_by"):
        if payload.get(key) is not None:
            lines.append(f"{key}: {payload[key]}")
    return "\n".join(lines)


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)


def notify(event: str, payload: dict) -> int:
    """Fire-and-forget dispatch. Returns the number of messages delivered.

    Delivery problems are logged and never reach the caller.
    """
    if not current_app.config.get("NOTIFY_ENABLED", True):
        return 0

    recipients = payload.get("recipients") or []
    if not recipients or not current_app.config.get("SMTP_HOST"):
        current_app.logger.info("notify %s booking=%s (no delivery)", event, payload.get("booking_id"))
        return 0

    subject = SUBJECTS.get(event, event)
    body = _body(event, payload)
    sent = 0
    for to_email in recipients:
        ok, error = send_email(to_email, subject, body)
        if ok:
            sent += 1
        else:
            current_app.logger.warning("notify %s to %s failed: %s", event, to_email, error)
    return sent
