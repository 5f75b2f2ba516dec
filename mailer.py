# mailer.py
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import config

logger = logging.getLogger("oshudh.mailer")


def mail_enabled() -> bool:
    return bool(config.SMTP_HOST and config.MAIL_SENDER)


def build_message(subject: str, html_message: str, receiver_email: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.MAIL_SENDER
    msg["To"] = receiver_email

    # plain-text fallback
    msg.attach(MIMEText(
        "This email contains HTML content. Please use an HTML-compatible email client.",
        "plain",
    ))
    msg.attach(MIMEText(html_message, "html"))
    return msg


def send_email(subject: str, html_message: str, receiver_email: str) -> bool:
    """Send an HTML email. Returns False when mail is not configured or sending failed."""
    if not mail_enabled():
        logger.debug("SMTP not configured, skipping email to %s", receiver_email)
        return False

    msg = build_message(subject, html_message, receiver_email)
    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
            server.starttls()
            if config.SMTP_USER:
                server.login(config.SMTP_USER, config.SMTP_PASSWORD)
            server.sendmail(config.MAIL_SENDER, receiver_email, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email to %s failed: %s", receiver_email, e)
        return False

    logger.info("Email sent to %s", receiver_email)
    return True
