"""Best-effort fan-out of fee payment events.

Two independent channels: an operator email and a ``fee-paid`` message on
every connected ``/ws/fees`` socket. Failures are logged and dropped; a
payment is never un-recorded because a notification could not be sent.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from .config import Settings, get_settings
from .reconciliation.models import FeePaidEvent

logger = logging.getLogger(__name__)

FEE_PAID_EVENT = "fee-paid"


class ConnectionHub:
    """Tracks open real-time sockets and broadcasts JSON messages to them."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.debug(f"Socket connected ({self.connection_count} open)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.debug(f"Socket disconnected ({self.connection_count} open)")

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send ``message`` to every socket, dropping the ones that fail.

        Returns:
            Number of sockets the message was delivered to.
        """
        async with self._lock:
            targets = list(self._connections)

        delivered = 0
        dead: List[WebSocket] = []
        for websocket in targets:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping socket after send failure: {type(e).__name__}: {e}")
                dead.append(websocket)

        if dead:
            async with self._lock:
                for websocket in dead:
                    self._connections.discard(websocket)
        return delivered


class EmailSender:
    """Sends plain-text mail through SMTP with STARTTLS."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.notify_email)

    def _send_sync(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.settings.from_email or self.settings.smtp_user or to
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as smtp:
            smtp.starttls()
            if self.settings.smtp_user and self.settings.smtp_password:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password)
            smtp.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> None:
        """Send one message without blocking the event loop."""
        await asyncio.to_thread(self._send_sync, to, subject, body)


class Notifier:
    """Publishes FeePaidEvents to email and the real-time hub."""

    def __init__(
        self,
        hub: Optional[ConnectionHub] = None,
        email_sender: Optional[EmailSender] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.hub = hub or ConnectionHub()
        self.email_sender = email_sender or EmailSender(self.settings)

    @staticmethod
    def email_subject(event: FeePaidEvent) -> str:
        return f"Fee paid by {event.admission_number or event.student_id}"

    @staticmethod
    def email_body(event: FeePaidEvent) -> str:
        return f"Payment of ₹{event.amount} received. Payment ID: {event.payment_id}"

    @staticmethod
    def socket_message(event: FeePaidEvent) -> Dict[str, Any]:
        return {"event": FEE_PAID_EVENT, "data": event.to_socket_payload()}

    async def _send_email(self, event: FeePaidEvent) -> bool:
        if not self.email_sender.configured:
            logger.debug(f"Email not configured; skipping notification for payment {event.payment_id}")
            return False
        try:
            await self.email_sender.send(
                self.settings.notify_email,
                self.email_subject(event),
                self.email_body(event),
            )
        except Exception as e:
            logger.error(f"Fee-paid email for payment {event.payment_id} failed: {type(e).__name__}: {e}")
            return False
        return True

    async def _broadcast(self, event: FeePaidEvent) -> int:
        try:
            return await self.hub.broadcast(self.socket_message(event))
        except Exception as e:
            logger.error(f"Fee-paid broadcast for payment {event.payment_id} failed: {type(e).__name__}: {e}")
            return 0

    async def notify(self, event: FeePaidEvent) -> Dict[str, Any]:
        """Publish ``event`` on every channel. Never raises.

        Returns:
            Delivery summary: whether the email went out and how many sockets
            received the message.
        """
        emailed = await self._send_email(event)
        delivered = await self._broadcast(event)
        logger.info(
            f"Notified fee-paid for {event.fee_id}: email={emailed} sockets={delivered}"
        )
        return {"email": emailed, "sockets": delivered}
