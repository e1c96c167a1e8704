import pytest

from app.modules.notes.utils import rbac


@pytest.mark.parametrize("permission", [rbac.OWNER, rbac.EDIT, rbac.READ])
def test_every_access_level_can_view(permission):
    assert rbac.CanViewNote(permission)


def test_no_access_cannot_view():
    assert not rbac.CanViewNote(None)


def test_edit_share_can_edit_but_not_revert():
    assert rbac.CanEditNote(rbac.EDIT)
    assert not rbac.CanRevertNote(rbac.EDIT)


def test_read_share_cannot_edit():
    assert not rbac.CanEditNote(rbac.READ)
    assert not rbac.CanRevertNote(rbac.READ)


def test_owner_only_actions():
    for check in (rbac.CanRevertNote, rbac.CanDeleteNote, rbac.CanShareNote):
        assert check(rbac.OWNER)
        assert not check(rbac.EDIT)
        assert not check(rbac.READ)


@pytest.mark.parametrize("permission", ["READ", "EDIT"])
def test_share_permissions_accept_read_and_edit(permission):
    assert rbac.IsValidSharePermission(permission)


@pytest.mark.parametrize("permission", ["OWNER", "read", "WRITE", "", None])
def test_share_permissions_reject_everything_else(permission):
    assert not rbac.IsValidSharePermission(permission)
