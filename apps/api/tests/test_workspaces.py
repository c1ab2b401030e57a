from __future__ import annotations

import uuid

import pytest

from teamchat.core.channels import create_channel, join_channel, list_channels
from teamchat.core.errors import Forbidden, InvalidOperation, NotAMember, NotFound, Unauthenticated
from teamchat.core.invites import update_member_role
from teamchat.core.membership import get_membership, is_channel_member
from teamchat.core.notifications import toggle_notifications
from teamchat.core.workspaces import (
    GENERAL_CHANNEL_NAME,
    create_workspace,
    get_workspace,
    list_members,
    list_workspaces,
    remove_workspace_member,
)
from teamchat.db.models import ROLE_ADMIN, ChannelNotification


def test_create_workspace_bootstraps_owner_and_general(db, alice):
    ws = create_workspace(db, alice, name="  Acme  ", description="Rockets")

    assert ws.name == "Acme"
    assert get_membership(db, ws.id, alice.user_id).role == "owner"

    channels = list_channels(db, alice, ws.id)
    assert [c.name for c in channels] == [GENERAL_CHANNEL_NAME]
    assert channels[0].is_private is False
    assert channels[0].description == "General discussion"
    assert is_channel_member(db, channels[0].id, alice.user_id)


def test_create_workspace_requires_identity(db):
    with pytest.raises(Unauthenticated):
        create_workspace(db, None, name="Acme")


def test_list_and_get_workspace_carry_role(db, acme, alice, bob, carol):
    assert [(ws.id, role) for ws, role in list_workspaces(db, alice)] == [(acme.id, "owner")]
    assert [(ws.id, role) for ws, role in list_workspaces(db, bob)] == [(acme.id, "member")]
    assert list_workspaces(db, carol) == []
    assert list_workspaces(db, None) == []

    assert get_workspace(db, bob, acme.id)[1] == "member"
    assert get_workspace(db, carol, acme.id) is None


def test_list_members_hidden_from_outsiders(db, acme, alice, bob, carol):
    members = list_members(db, bob, acme.id)
    assert {(u.id, wm.role) for wm, u in members} == {(alice.user_id, "owner"), (bob.user_id, "member")}
    assert list_members(db, carol, acme.id) == []


def test_outsider_queries_are_empty_and_mutations_raise(db, acme, carol):
    assert list_channels(db, carol, acme.id) == []
    assert get_workspace(db, carol, acme.id) is None

    with pytest.raises(NotAMember):
        create_channel(db, carol, workspace_id=acme.id, name="random")


def test_revoked_member_is_treated_as_outsider(db, acme, alice, bob):
    assert list_channels(db, bob, acme.id) != []

    remove_workspace_member(db, alice, workspace_id=acme.id, user_id=bob.user_id)

    assert list_channels(db, bob, acme.id) == []
    assert get_workspace(db, bob, acme.id) is None
    assert list_members(db, bob, acme.id) == []
    with pytest.raises(NotAMember):
        create_channel(db, bob, workspace_id=acme.id, name="back door")


def test_remove_member_cascades_channel_rows(db, acme, alice, bob):
    general = list_channels(db, alice, acme.id)[0]

    join_channel(db, bob, channel_id=general.id)
    toggle_notifications(db, bob, channel_id=general.id, enabled=True)

    remove_workspace_member(db, alice, workspace_id=acme.id, user_id=bob.user_id)

    assert get_membership(db, acme.id, bob.user_id) is None
    assert not is_channel_member(db, general.id, bob.user_id)
    assert db.query(ChannelNotification).filter_by(user_id=bob.user_id).count() == 0


def test_remove_member_rules(db, acme, alice, bob, carol, add_member):
    add_member(acme.id, carol, role=ROLE_ADMIN)

    with pytest.raises(Forbidden):
        remove_workspace_member(db, bob, workspace_id=acme.id, user_id=carol.user_id)

    with pytest.raises(InvalidOperation):
        remove_workspace_member(db, carol, workspace_id=acme.id, user_id=alice.user_id)

    with pytest.raises(NotFound):
        remove_workspace_member(db, alice, workspace_id=acme.id, user_id=uuid.uuid4())

    # admins cannot remove admins; the owner can
    update_member_role(db, alice, workspace_id=acme.id, user_id=bob.user_id, new_role=ROLE_ADMIN)
    with pytest.raises(Forbidden):
        remove_workspace_member(db, carol, workspace_id=acme.id, user_id=bob.user_id)
    remove_workspace_member(db, alice, workspace_id=acme.id, user_id=bob.user_id)
    assert get_membership(db, acme.id, bob.user_id) is None
