from __future__ import annotations

import pytest

from teamchat.core import messages as messages_core
from teamchat.core import notifications as notifications_core
from teamchat.core.channels import add_member, create_channel, list_channels, remove_member
from teamchat.core.errors import Forbidden, NotAMember
from teamchat.core.messages import send_message
from teamchat.core.notifications import (
    get_notification_setting,
    get_unnotified_messages,
    toggle_notifications,
    users_to_notify,
)
from teamchat.db.models import ChannelNotification


@pytest.fixture
def ticking(monkeypatch, clock):
    monkeypatch.setattr(messages_core, "_now", clock)
    monkeypatch.setattr(notifications_core, "_now", clock)


@pytest.fixture
def general(db, acme, alice):
    return list_channels(db, alice, acme.id)[0]


def test_toggle_upserts_one_row(db, general, bob):
    assert get_notification_setting(db, bob, general.id) is False

    toggle_notifications(db, bob, channel_id=general.id, enabled=True)
    assert get_notification_setting(db, bob, general.id) is True
    assert users_to_notify(db, general.id) == [bob.user_id]

    toggle_notifications(db, bob, channel_id=general.id, enabled=False)
    assert get_notification_setting(db, bob, general.id) is False
    assert users_to_notify(db, general.id) == []
    assert db.query(ChannelNotification).count() == 1


def test_toggle_requires_read_access(db, acme, alice, bob, carol, general):
    with pytest.raises(NotAMember):
        toggle_notifications(db, carol, channel_id=general.id, enabled=True)

    secrets = create_channel(db, alice, workspace_id=acme.id, name="secrets", is_private=True)
    with pytest.raises(Forbidden):
        toggle_notifications(db, bob, channel_id=secrets.id, enabled=True)


def test_unnotified_messages_advance_the_watermark(db, acme, alice, bob, general, ticking):
    send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="before opt-in")
    toggle_notifications(db, bob, channel_id=general.id, enabled=True)

    m1 = send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="one")
    own = send_message(db, bob, workspace_id=acme.id, channel_id=general.id, text="mine")
    m2 = send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="two")

    assert [m.id for m in get_unnotified_messages(db, bob)] == [m1.id, m2.id]
    # already handed out
    assert get_unnotified_messages(db, bob) == []

    m3 = send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="three")
    assert [m.id for m in get_unnotified_messages(db, bob)] == [m3.id]
    assert own.id not in {m.id for m in get_unnotified_messages(db, bob)}


def test_disabled_channels_are_skipped(db, acme, alice, bob, general, ticking):
    toggle_notifications(db, bob, channel_id=general.id, enabled=True)
    toggle_notifications(db, bob, channel_id=general.id, enabled=False)
    send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="quiet")

    assert get_unnotified_messages(db, bob) == []


def test_reenabling_does_not_replay_backlog(db, acme, alice, bob, general, ticking):
    toggle_notifications(db, bob, channel_id=general.id, enabled=True)
    toggle_notifications(db, bob, channel_id=general.id, enabled=False)
    send_message(db, alice, workspace_id=acme.id, channel_id=general.id, text="missed")
    toggle_notifications(db, bob, channel_id=general.id, enabled=True)

    assert get_unnotified_messages(db, bob) == []


def test_channels_without_access_are_skipped(db, acme, alice, bob, ticking):
    secrets = create_channel(db, alice, workspace_id=acme.id, name="secrets", is_private=True)
    add_member(db, alice, channel_id=secrets.id, user_id=bob.user_id)
    toggle_notifications(db, bob, channel_id=secrets.id, enabled=True)

    # a stale setting row, as if the membership vanished without cleanup
    remove_member(db, alice, channel_id=secrets.id, user_id=bob.user_id)
    db.add(ChannelNotification(channel_id=secrets.id, user_id=bob.user_id, enabled=True, last_seen=messages_core._now()))
    db.commit()

    send_message(db, alice, workspace_id=acme.id, channel_id=secrets.id, text="classified")
    assert get_unnotified_messages(db, bob) == []


def test_anonymous_gets_nothing(db):
    assert get_unnotified_messages(db, None) == []
    assert get_notification_setting(db, None, None) is False
