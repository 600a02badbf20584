import pytest

from storefront.core.errors import NotFoundError
from storefront.db.models import ConversationStatus, Customer, MessageRole
from storefront.services.chat import DEFAULT_CUSTOMER_NAME, ChatService


@pytest.fixture()
def chat(db, side_effects, channel):
    return ChatService(db, side_effects, channel)


class TestInbound:
    def test_new_number_creates_customer_and_conversation(self, chat, db, seed, broadcaster):
        conversation, message = chat.record_inbound(seed.business_id, "+584147777777", "hola, tienen tallas?")

        customer = db.get(Customer, conversation.customer_id)
        assert customer.name == DEFAULT_CUSTOMER_NAME
        assert message.role == MessageRole.CUSTOMER
        [(_, _, data)] = broadcaster.named("new_message")
        assert data["conversation_id"] == conversation.id
        assert data["message"]["content"] == "hola, tienen tallas?"

    def test_known_number_reuses_conversation(self, chat, seed):
        first, _ = chat.record_inbound(seed.business_id, "+584141234567", "uno")
        second, _ = chat.record_inbound(seed.business_id, "+584141234567", "dos")
        assert first.id == second.id
        assert first.customer_id == seed.customer_id

    def test_unknown_business(self, chat):
        with pytest.raises(NotFoundError):
            chat.record_inbound(999, "+58", "hola")


class TestAgentAndBot:
    def test_agent_reply_is_logged_and_sent(self, chat, seed, channel):
        conversation, _ = chat.record_inbound(seed.business_id, "+584141234567", "hola")
        reply = chat.send_agent_message(seed.business_id, conversation.id, "Buenas!")

        assert reply.role == MessageRole.AGENT
        assert channel.sent == [(seed.business_id, "+584141234567", "Buenas!")]
        assert [m.role for m in chat.list_messages(seed.business_id, conversation.id)] == [
            MessageRole.CUSTOMER, MessageRole.AGENT,
        ]

    def test_agent_reply_survives_channel_failure(self, chat, seed, channel):
        conversation, _ = chat.record_inbound(seed.business_id, "+584141234567", "hola")
        channel.fail = True
        chat.send_agent_message(seed.business_id, conversation.id, "Buenas!")
        assert len(chat.list_messages(seed.business_id, conversation.id)) == 2

    def test_toggle_bot(self, chat, seed, broadcaster):
        conversation, _ = chat.record_inbound(seed.business_id, "+584141234567", "hola")

        updated = chat.toggle_bot(seed.business_id, conversation.id, False)
        assert (updated.bot_active, updated.status) == (False, ConversationStatus.HUMAN)
        [(_, _, data)] = broadcaster.named("conversation_updated")
        assert data["bot_active"] is False

    def test_other_tenant_cannot_read(self, chat, seed):
        conversation, _ = chat.record_inbound(seed.business_id, "+584141234567", "hola")
        with pytest.raises(NotFoundError):
            chat.list_messages(seed.other_business_id, conversation.id)
