"""
Tenjin Telegram Notification Service
OS-level push surface: wellness alerts during a live session and a short
summary when a session report is produced.
"""

import html
import logging
import time
from typing import Optional

import httpx

from tenjin.core.config import settings
from tenjin.models.session import SessionReport

logger = logging.getLogger("tenjin.telegram")


def _escape(text: str) -> str:
    # Telegram HTML mode only needs &, < and > escaped
    return html.escape(text, quote=False)


class TelegramService:
    """Sends notifications to Telegram via Bot API"""

    _instance: Optional['TelegramService'] = None

    @classmethod
    def get_instance(cls) -> 'TelegramService':
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, bot_token: str = settings.TELEGRAM_BOT_TOKEN,
                 chat_id: str = settings.TELEGRAM_CHAT_ID,
                 enabled: bool = settings.TELEGRAM_ENABLED,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.enabled = bool(enabled and bot_token and chat_id)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = f"https://api.telegram.org/bot{self.bot_token}"
        self._transport = transport

        if self.enabled:
            logger.info("✅ Telegram notifications enabled")
        else:
            logger.info("ℹ️  Telegram notifications disabled (set TELEGRAM_BOT_TOKEN & TELEGRAM_CHAT_ID in .env)")

    async def _send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """Send a message via Telegram Bot API"""
        if not self.enabled:
            return False
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": text,
                        "parse_mode": parse_mode,
                    },
                )
                if resp.status_code == 200:
                    return True
                else:
                    logger.warning(f"Telegram API error {resp.status_code}: {resp.text}")
                    return False
        except httpx.HTTPError as e:
            logger.error(f"Telegram send failed: {e}")
            return False

    # ── NotificationSurface ──────────────────────────────────

    async def notify(self, title: str, message: str) -> bool:
        """Push a wellness alert. Throttling is done upstream."""
        text = (
            f"⚠️ <b>{_escape(title)}</b>\n\n"
            f"{_escape(message)}\n\n"
            f"🕐 {time.strftime('%Y-%m-%d %H:%M:%S')}"
        )
        return await self._send_message(text)

    # ── Session summary ──────────────────────────────────────

    async def send_session_summary(self, report: SessionReport) -> bool:
        """Short text version of the end-of-session report."""
        score = report.overall_score_percent
        status = "✅" if score >= 80 else "⚠️"

        lines = []
        for c in report.categories:
            lines.append(f"  • {_escape(c.label)}: <b>{c.score:.1f}/10</b>")
            if c.guidance == "corrective":
                lines.append(f"    ↳ {_escape(c.recommendation)}")

        text = (
            f"📊 <b>Tenjin Session Audit</b>\n\n"
            f"{status} Final index: <b>{score}%</b>\n"
            f"⏱ Active monitoring: {report.total_minutes}m "
            f"({report.total_audits} audits)\n\n"
            + "\n".join(lines)
        )
        return await self._send_message(text)


# Singleton accessor
def get_telegram_service() -> TelegramService:
    return TelegramService.get_instance()
