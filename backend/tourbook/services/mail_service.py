"""
Tourbook API: SMTP Mail Service
===============================

What:  Sends password-reset emails over SMTP.
How:   smtplib runs in a worker thread (it blocks); tenacity retries transient
       failures with exponential backoff and jitter. When every attempt
       fails, MailDeliveryError is raised and the caller decides what to
       roll back.

Resilience Strategy:
    attempt 1 → wait ~1s → attempt 2 → wait ~2s → attempt 3 → give up
    (RETRY_MAX_ATTEMPTS / RETRY_MIN_WAIT / RETRY_MAX_WAIT)
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from tourbook.config import settings
from tourbook.exceptions import MailDeliveryError
from tourbook.services.mail_base import MailService

logger = logging.getLogger(__name__)


class SMTPMailService(MailService):
    def __init__(
        self,
        host: str = settings.smtp_host,
        port: int = settings.smtp_port,
        username: str = settings.smtp_username,
        password: str = settings.smtp_password,
        use_tls: bool = settings.smtp_use_tls,
        sender: str = settings.email_from,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def _build(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    @retry(
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            multiplier=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    async def _deliver_with_retry(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._deliver, message)

    async def send(self, to: str, subject: str, body: str) -> None:
        message = self._build(to, subject, body)
        try:
            await self._deliver_with_retry(message)
        except RetryError as e:
            cause = e.last_attempt.exception() if e.last_attempt else None
            logger.error("Mail to %s failed after %d attempts: %s", to, settings.retry_max_attempts, cause)
            raise MailDeliveryError(context={"to": to, "error": repr(cause)})
        logger.info("Mail '%s' sent to %s", subject, to)


mail_service = SMTPMailService()
