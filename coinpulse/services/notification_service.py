"""
告警通知
Telegram Bot (aiohttp) 与 SMTP 邮件 (smtplib，放到线程池执行)
"""
import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Iterable, Optional

import aiohttp

from ..config import Settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """通知发送失败（配置缺失或远端报错）"""


def format_condition(condition_type: str, value: float) -> str:
    kind = (condition_type or "").lower()
    if kind == "price_above":
        return f"Price above ${value:.2f}"
    if kind == "price_below":
        return f"Price below ${value:.2f}"
    if kind == "volume_above":
        return f"Volume above {value:.0f}"
    if kind == "volume_below":
        return f"Volume below {value:.0f}"
    return f"{condition_type}: {value:.2f}"


def _send_email_sync(
    *,
    subject: str,
    body: str,
    to_addrs: Iterable[str],
    host: str,
    port: int,
    username: Optional[str],
    password: Optional[str],
    sender: str,
    use_tls: bool,
    use_ssl: bool,
    timeout: int,
) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(to_addrs)
    msg.set_content(body)

    if use_ssl:
        with smtplib.SMTP_SSL(host, port, timeout=timeout) as smtp:
            if username:
                smtp.login(username, password or "")
            smtp.send_message(msg)
        return

    with smtplib.SMTP(host, port, timeout=timeout) as smtp:
        if use_tls:
            smtp.starttls()
        if username:
            smtp.login(username, password or "")
        smtp.send_message(msg)


class NotificationService:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._timeout = aiohttp.ClientTimeout(total=10)

    def format_alert_message(
        self,
        symbol: str,
        condition_type: str,
        condition_value: float,
        current_price: float,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or datetime.now(timezone.utc)
        return (
            "🚨 *Alert Triggered!*\n\n"
            f"*Coin:* {symbol}\n"
            f"*Condition:* {format_condition(condition_type, condition_value)}\n"
            f"*Current Price:* ${current_price:.2f}\n"
            f"*Time:* {now.strftime('%Y-%m-%d %H:%M')} UTC\n\n"
            "_CoinPulse Alert System_"
        )

    async def send_telegram(self, chat_id: Optional[int], text: str) -> None:
        token = self.settings.TELEGRAM_BOT_TOKEN
        if not token:
            raise NotificationError("telegram bot token not configured")
        if not chat_id:
            raise NotificationError("no notification target: telegram chat id missing")

        url = f"{self.settings.TELEGRAM_API_BASE_URL.rstrip('/')}/bot{token}/sendMessage"
        data = {"chat_id": str(chat_id), "text": text, "parse_mode": "Markdown"}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, data=data) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise NotificationError(f"telegram API error: {resp.status} {body[:200]}")
        except aiohttp.ClientError as e:
            raise NotificationError(f"telegram request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise NotificationError("telegram request timed out") from e
        logger.info(f"✅ Telegram 消息已发送 chat={chat_id}")

    async def send_email(self, to: Optional[str], subject: str, body: str) -> None:
        s = self.settings
        if not to:
            raise NotificationError("no notification target: email missing")
        if not s.EMAIL_ALERTS_ENABLED or not s.SMTP_HOST:
            raise NotificationError("email notifications not configured")
        sender = (s.SMTP_FROM or s.SMTP_USER).strip()
        if not sender:
            raise NotificationError("SMTP sender not configured")

        try:
            await asyncio.to_thread(
                _send_email_sync,
                subject=subject,
                body=body,
                to_addrs=[to],
                host=s.SMTP_HOST,
                port=s.SMTP_PORT,
                username=s.SMTP_USER or None,
                password=s.SMTP_PASSWORD or None,
                sender=sender,
                use_tls=s.SMTP_TLS,
                use_ssl=s.SMTP_SSL,
                timeout=s.SMTP_TIMEOUT,
            )
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"email send failed: {e}") from e
        logger.info(f"📧 告警邮件已发送: {to}")
