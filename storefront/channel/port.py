"""Chat channel port: the outbound contract used to reach customers."""

from abc import ABC, abstractmethod


class ChannelError(Exception):
    pass


class ChannelNotConnected(ChannelError):
    pass


class ChatChannel(ABC):
    @abstractmethod
    def send_message(self, business_id: int, phone: str, text: str) -> None:
        """Deliver ``text`` to ``phone`` on behalf of the tenant.

        One attempt only; raises ``ChannelError`` (or the transport's error) on
        failure. Callers treat delivery as best-effort and never retry.
        """
        ...
