"""Per-tenant connections to the external chat channel (WhatsApp Cloud API style).

Each tenant gets one ``ChannelConnection`` actor owning its own HTTP client. The
``ChannelRegistry`` has an explicit lifecycle: ``start()`` restores every
connection whose persisted row is enabled, ``stop()`` closes them all. The
desired state lives in ``channel_connections`` so a restart reconnects the
same tenants.
"""

import threading
from typing import Callable, Dict, Optional

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.channel.port import ChannelError, ChannelNotConnected, ChatChannel
from storefront.db.models import ChannelConnection as ConnectionRow
from storefront.db.session import atomic
from storefront.security.utils import now_utc

logger = structlog.get_logger(__name__)

CONNECTED = "CONNECTED"
DISCONNECTED = "DISCONNECTED"
FAILED = "FAILED"


class ChannelConnection:
    def __init__(self, business_id: int, phone_number_id: str, api_base: str, token: str,
                 timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None):
        self.business_id = business_id
        self.phone_number_id = phone_number_id
        self.status = DISCONNECTED
        self.last_error: Optional[str] = None
        self._client = httpx.Client(
            base_url=api_base,
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"} if token else {},
            transport=transport,
        )

    @property
    def connected(self) -> bool:
        return self.status == CONNECTED

    def open(self) -> None:
        try:
            resp = self._client.get(f"/{self.phone_number_id}")
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            self.status = FAILED
            self.last_error = str(exc) or exc.__class__.__name__
            raise ChannelError(f"Channel handshake failed: {self.last_error}") from exc
        self.status = CONNECTED
        self.last_error = None

    def close(self) -> None:
        self._client.close()
        self.status = DISCONNECTED

    def send_text(self, phone: str, text: str) -> None:
        if not self.connected:
            raise ChannelNotConnected(f"Channel not connected for business {self.business_id}")
        resp = self._client.post(
            f"/{self.phone_number_id}/messages",
            json={"messaging_product": "whatsapp", "to": phone, "type": "text", "text": {"body": text}},
        )
        resp.raise_for_status()


class ChannelRegistry(ChatChannel):
    def __init__(self, session_factory: Callable[[], Session], api_base: str, token: str,
                 timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None):
        self.session_factory = session_factory
        self.api_base = api_base
        self.token = token
        self.timeout = timeout
        self.transport = transport
        self._connections: Dict[int, ChannelConnection] = {}
        self._lock = threading.Lock()

    # lifecycle
    def start(self) -> None:
        with self.session_factory() as db:
            rows = db.execute(select(ConnectionRow).where(ConnectionRow.enabled.is_(True))).scalars().all()
            targets = [(r.business_id, r.phone_number_id) for r in rows]
        for business_id, phone_number_id in targets:
            self._open(business_id, phone_number_id)
        logger.info("Channel registry started", restored=len(targets))

    def stop(self) -> None:
        with self._lock:
            conns = list(self._connections.values())
            self._connections.clear()
        for conn in conns:
            conn.close()
        logger.info("Channel registry stopped", closed=len(conns))

    # tenant operations
    def connect(self, business_id: int, phone_number_id: str) -> ChannelConnection:
        with self.session_factory() as db, atomic(db):
            row = db.get(ConnectionRow, business_id)
            if row is None:
                row = ConnectionRow(business_id=business_id, phone_number_id=phone_number_id)
                db.add(row)
            row.phone_number_id = phone_number_id
            row.enabled = True
        self._close(business_id)
        return self._open(business_id, phone_number_id)

    def disconnect(self, business_id: int) -> None:
        with self.session_factory() as db, atomic(db):
            row = db.get(ConnectionRow, business_id)
            if row is not None:
                row.enabled = False
                row.status = DISCONNECTED
        self._close(business_id)

    def status(self, business_id: int) -> dict:
        conn = self._connections.get(business_id)
        if conn is not None:
            return {"business_id": business_id, "connected": conn.connected, "status": conn.status,
                    "phone_number_id": conn.phone_number_id, "last_error": conn.last_error}
        with self.session_factory() as db:
            row = db.get(ConnectionRow, business_id)
            if row is None:
                return {"business_id": business_id, "connected": False, "status": DISCONNECTED,
                        "phone_number_id": None, "last_error": None}
            return {"business_id": business_id, "connected": False, "status": row.status,
                    "phone_number_id": row.phone_number_id, "last_error": row.last_error}

    def send_message(self, business_id: int, phone: str, text: str) -> None:
        conn = self._connections.get(business_id)
        if conn is None:
            raise ChannelNotConnected(f"Channel not connected for business {business_id}")
        conn.send_text(phone, text)

    # internals
    def _open(self, business_id: int, phone_number_id: str) -> ChannelConnection:
        conn = ChannelConnection(business_id, phone_number_id, self.api_base, self.token,
                                 timeout=self.timeout, transport=self.transport)
        try:
            conn.open()
        except ChannelError:
            logger.warning("Channel connection failed", business_id=business_id, error=conn.last_error)
        with self._lock:
            self._connections[business_id] = conn
        self._persist(conn)
        return conn

    def _close(self, business_id: int) -> None:
        with self._lock:
            conn = self._connections.pop(business_id, None)
        if conn is not None:
            conn.close()

    def _persist(self, conn: ChannelConnection) -> None:
        with self.session_factory() as db, atomic(db):
            row = db.get(ConnectionRow, conn.business_id)
            if row is None:
                return
            row.status = conn.status
            row.last_error = conn.last_error
            if conn.connected:
                row.last_connected_at = now_utc()
