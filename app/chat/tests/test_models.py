"""
Tests for chat models.

Covers:
- Chat membership helpers and per-viewer display values
- Uniqueness constraints (membership, direct pair, reaction, read receipt)
- Message editing and soft deletion
"""

import pytest
from django.db import IntegrityError, transaction

from chat.constants import MESSAGE_CONFIG
from chat.models import Chat, ChatMembership, DirectChatPair, Message, MessageReadReceipt
from chat.tests.factories import (
    ChatMembershipFactory,
    DirectChatFactory,
    GroupChatFactory,
    MessageFactory,
    MessageReactionFactory,
)


@pytest.mark.django_db
class TestChat:
    """Tests for Chat helpers."""

    def test_member_ids_in_join_order(self, group_chat, alice, bob, carol):
        assert group_chat.member_ids() == [alice.pk, bob.pk, carol.pk]

    def test_is_member(self, group_chat, alice, dave):
        assert group_chat.is_member(alice)
        assert not group_chat.is_member(dave)

    def test_for_user_returns_only_member_chats(self, group_chat, direct_chat, carol):
        assert list(Chat.objects.for_user(carol)) == [group_chat]

    def test_direct_chat_shows_other_member(self, direct_chat, alice, bob):
        assert direct_chat.other_member(alice) == bob
        assert direct_chat.display_name_for(alice) == "Bob"
        assert direct_chat.display_name_for(bob) == "Alice"
        assert direct_chat.display_avatar_for(alice) == bob.avatar

    def test_group_chat_shows_own_name(self, group_chat, bob):
        assert group_chat.display_name_for(bob) == "Weekend Trip"

    def test_str(self, group_chat, direct_chat):
        assert str(group_chat) == "Group: Weekend Trip"
        assert str(direct_chat) == f"Direct({direct_chat.pk})"

    def test_deleting_chat_removes_messages(self, group_chat, alice):
        message = MessageFactory(chat=group_chat, sender=alice)
        group_chat.latest_message = message
        group_chat.save()

        group_chat.delete()

        assert not Message.objects.filter(pk=message.pk).exists()
        assert not ChatMembership.objects.filter(chat_id=message.chat_id).exists()


@pytest.mark.django_db
class TestConstraints:
    """Database-level uniqueness rules."""

    def test_membership_unique_per_chat_and_user(self, group_chat, bob):
        with pytest.raises(IntegrityError), transaction.atomic():
            ChatMembershipFactory(chat=group_chat, user=bob)

    def test_direct_pair_unique(self, direct_chat, alice, bob):
        other_chat = Chat.objects.create(is_group=False)
        lower, higher = DirectChatPair.canonical(alice.pk, bob.pk)

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectChatPair.objects.create(
                chat=other_chat, user_lower_id=lower, user_higher_id=higher
            )

    def test_direct_pair_requires_canonical_order(self, alice, bob):
        chat = Chat.objects.create(is_group=False)
        lower, higher = DirectChatPair.canonical(alice.pk, bob.pk)

        with pytest.raises(IntegrityError), transaction.atomic():
            DirectChatPair.objects.create(chat=chat, user_lower_id=higher, user_higher_id=lower)

    def test_canonical_is_order_independent(self, alice, bob):
        assert DirectChatPair.canonical(alice.pk, bob.pk) == DirectChatPair.canonical(
            bob.pk, alice.pk
        )

    def test_one_reaction_per_user_per_message(self, group_chat, alice, bob):
        message = MessageFactory(chat=group_chat, sender=alice)
        MessageReactionFactory(message=message, user=bob, emoji="👍")

        with pytest.raises(IntegrityError), transaction.atomic():
            MessageReactionFactory(message=message, user=bob, emoji="🎉")

    def test_one_read_receipt_per_user_per_message(self, group_chat, alice, bob):
        message = MessageFactory(chat=group_chat, sender=alice)
        MessageReadReceipt.objects.create(message=message, user=bob)

        with pytest.raises(IntegrityError), transaction.atomic():
            MessageReadReceipt.objects.create(message=message, user=bob)


@pytest.mark.django_db
class TestMessage:
    """Tests for Message editing and soft deletion."""

    def test_edit_content_sets_edit_state(self, group_chat, alice):
        message = MessageFactory(chat=group_chat, sender=alice, content="Helo")

        message.edit_content("Hello")

        message.refresh_from_db()
        assert message.content == "Hello"
        assert message.is_edited is True
        assert message.edited_at is not None

    def test_soft_delete_replaces_content(self, group_chat, alice):
        message = MessageFactory(chat=group_chat, sender=alice, content="Secret")

        message.soft_delete(deleted_by=alice)

        message.refresh_from_db()
        assert message.is_deleted is True
        assert message.deleted_at is not None
        assert message.deleted_by == alice
        assert message.content == MESSAGE_CONFIG.DELETED_PLACEHOLDER

    def test_active_excludes_soft_deleted(self, group_chat, alice):
        kept = MessageFactory(chat=group_chat, sender=alice)
        gone = MessageFactory(chat=group_chat, sender=alice)
        gone.soft_delete()

        assert list(Message.objects.active()) == [kept]
        assert list(Message.objects.deleted()) == [gone]

    def test_search_is_case_insensitive(self, group_chat, alice):
        match = MessageFactory(chat=group_chat, sender=alice, content="See you at the BEACH")
        MessageFactory(chat=group_chat, sender=alice, content="Mountains")

        assert list(Message.objects.search("beach")) == [match]

    def test_reply_survives_deleted_original(self, group_chat, alice, bob):
        original = MessageFactory(chat=group_chat, sender=alice)
        reply = MessageFactory(chat=group_chat, sender=bob, reply_to=original)

        original.soft_delete(deleted_by=alice)

        reply.refresh_from_db()
        assert reply.reply_to == original

    def test_sender_removal_keeps_message(self, alice, bob):
        chat = DirectChatFactory(user1=alice, user2=bob)
        message = MessageFactory(chat=chat, sender=bob)

        bob.delete()

        message.refresh_from_db()
        assert message.sender is None
        assert str(message).startswith("System:")

    def test_group_factory_orders_admin_first(self, alice, bob):
        chat = GroupChatFactory(admin=bob, members=[alice])

        assert chat.member_ids() == [bob.pk, alice.pk]
