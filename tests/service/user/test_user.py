import pytest

from dmchat.errors import NotFoundError, ValidationError
from dmchat.service.user.user import handle_identity_event, resolve_current_user, sync_user_service


def _event(event_type, clerk_id, email=None, **fields):
    data = {"id": clerk_id, **fields}
    if email:
        data["email_addresses"] = [{"email_address": email}]
    return {"type": event_type, "data": data}


def test_identity_upsert_is_idempotent(repo):
    handle_identity_event(repo, _event("user.created", "clerk_x", "x@example.com", first_name="X"))
    handle_identity_event(repo, _event("user.created", "clerk_x", "x@example.com", first_name="X"))

    user = repo.get_user_by_clerk_id("clerk_x")
    assert user.first_name == "X"
    assert len(repo.list_sidebar("someone-else")) == 1


def test_identity_update_overwrites_profile(repo):
    handle_identity_event(repo, _event("user.created", "clerk_x", "x@example.com", first_name="X", username="xx"))
    handle_identity_event(repo, _event("user.updated", "clerk_x", "x2@example.com", first_name="Xavier"))

    user = repo.get_user_by_clerk_id("clerk_x")
    assert user.email == "x2@example.com"
    assert user.first_name == "Xavier"
    assert user.username is None


def test_identity_delete_removes_messages(repo, alice, bob):
    repo.create_message(alice.id, bob.id, "bye", None)

    handle_identity_event(repo, _event("user.deleted", "clerk_alice"))

    assert repo.get_user(alice.id) is None
    assert repo.find_conversation(alice.id, bob.id) == []


def test_identity_delete_unknown_is_noop(repo):
    handle_identity_event(repo, _event("user.deleted", "clerk_nobody"))


def test_identity_event_validation(repo):
    with pytest.raises(ValidationError):
        handle_identity_event(repo, {"type": "user.created", "data": {}})
    with pytest.raises(ValidationError):
        handle_identity_event(repo, _event("user.created", "clerk_x"))


def test_identity_event_unknown_type_ignored(repo):
    handle_identity_event(repo, _event("session.created", "clerk_x"))

    assert repo.get_user_by_clerk_id("clerk_x") is None


def test_resolve_current_user(repo, alice):
    assert resolve_current_user(repo, {"sub": "clerk_alice"}).id == alice.id

    created = resolve_current_user(repo, {"sub": "clerk_new", "email": "new@example.com"})
    assert created.clerk_id == "clerk_new"

    with pytest.raises(NotFoundError):
        resolve_current_user(repo, {"sub": "clerk_unknown"})


def test_sync_keeps_existing_profile(repo, alice):
    user = sync_user_service(repo, {"sub": "clerk_alice", "email": "alice@example.com", "first_name": "Other"})

    assert user.id == alice.id
    assert user.first_name == "Alice"
