# app/services/mailer.py
"""
メール送信サービス
  - SMTP経由でメールを送信する Mailer と、送信をバックグラウンドで実行する MailDispatcher を提供する。
  - 送信失敗はログに記録するのみで、呼び出し元の処理は失敗させない（fire-and-forget）。
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class Mailer:
    """メーラーインターフェース"""

    def send(self, mail: Mail) -> None:
        raise NotImplementedError


class SMTPMailer(Mailer):
    """SMTP（STARTTLS）でメールを送信する"""

    def __init__(self, config: Settings = settings):
        self.config = config

    def send(self, mail: Mail) -> None:
        msg = EmailMessage()
        msg["Subject"] = mail.subject
        msg["From"] = self.config.smtp_from_email
        msg["To"] = mail.to
        msg.set_content(mail.text)
        if mail.html:
            msg.add_alternative(mail.html, subtype="html")

        ctx = ssl.create_default_context()
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=self.config.smtp_timeout_seconds) as s:
            s.starttls(context=ctx)
            if self.config.smtp_username and self.config.smtp_password:
                s.login(self.config.smtp_username, self.config.smtp_password)
            s.send_message(msg)


class LoggingMailer(Mailer):
    """MAIL_ENABLED=false の環境用。宛先と件名のみをログに出す（本文にはトークンが含まれるため出さない）"""

    def send(self, mail: Mail) -> None:
        logger.info("メール送信は無効です（MAIL_ENABLED=false）: to=%s, subject=%s", mail.to, mail.subject)


class MailDispatcher:
    """メール送信をスレッドプールで非同期に実行する"""

    def __init__(self, mailer: Mailer, max_workers: int = 2):
        self.mailer = mailer
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mailer")

    def dispatch(self, mail: Mail) -> Future:
        future = self._executor.submit(self.mailer.send, mail)
        future.add_done_callback(lambda f: self._log_result(f, mail))
        return future

    @staticmethod
    def _log_result(future: Future, mail: Mail) -> None:
        error = future.exception()
        if error is not None:
            logger.error("メール送信に失敗しました: to=%s, subject=%s, error=%s", mail.to, mail.subject, error)
        else:
            logger.info("メールを送信しました: to=%s, subject=%s", mail.to, mail.subject)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def build_mailer(config: Settings = settings) -> Mailer:
    if config.mail_enabled:
        return SMTPMailer(config)
    return LoggingMailer()


mail_dispatcher = MailDispatcher(build_mailer())
