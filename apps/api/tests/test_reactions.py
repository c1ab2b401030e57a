from __future__ import annotations

import pytest

from teamchat.core.channels import create_channel, list_channels
from teamchat.core.errors import Forbidden, NotAMember, NotFound, Unauthenticated
from teamchat.core.messages import remove_message, send_message
from teamchat.core.reactions import aggregate_reactions, toggle_reaction
from teamchat.db.models import Reaction


@pytest.fixture
def message(db, acme, alice):
    general = list_channels(db, alice, acme.id)[0]
    return send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="ship it")


def _count(db, message_id, emoji):
    groups = aggregate_reactions(db, [message_id]).get(message_id, [])
    return next((g.count for g in groups if g.emoji == emoji), 0)


def test_double_toggle_returns_to_original_state(db, message, bob):
    before = _count(db, message.id, "👍")

    assert toggle_reaction(db, bob, message_id=message.id, emoji="👍") is True
    assert _count(db, message.id, "👍") == before + 1

    assert toggle_reaction(db, bob, message_id=message.id, emoji="👍") is False
    assert _count(db, message.id, "👍") == before
    assert db.query(Reaction).filter_by(message_id=message.id).count() == 0


def test_aggregation_groups_by_emoji_in_first_use_order(db, message, alice, bob):
    toggle_reaction(db, bob, message_id=message.id, emoji="🚀")
    toggle_reaction(db, alice, message_id=message.id, emoji="👍")
    toggle_reaction(db, alice, message_id=message.id, emoji="🚀")

    groups = aggregate_reactions(db, [message.id])[message.id]
    assert [(g.emoji, g.count) for g in groups] == [("🚀", 2), ("👍", 1)]
    assert groups[0].user_ids == [bob.user_id, alice.user_id]
    assert aggregate_reactions(db, []) == {}


def test_cannot_react_to_deleted_message(db, message, alice, bob):
    remove_message(db, alice, message_id=message.id)
    with pytest.raises(NotFound):
        toggle_reaction(db, bob, message_id=message.id, emoji="👍")


def test_reaction_requires_membership(db, acme, alice, bob, carol, message):
    with pytest.raises(Unauthenticated):
        toggle_reaction(db, None, message_id=message.id, emoji="👍")
    with pytest.raises(NotAMember):
        toggle_reaction(db, carol, message_id=message.id, emoji="👍")

    secrets = create_channel(db, alice, workspace_id=acme.id, name="secrets", is_private=True)
    hidden = send_message(db, alice, workspace_id=acme.id, channel_id=secrets.id, text="classified")
    with pytest.raises(Forbidden):
        toggle_reaction(db, bob, message_id=hidden.id, emoji="👀")
