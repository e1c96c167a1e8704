OWNER = "OWNER"
EDIT = "EDIT"
READ = "READ"

SharePermissions = {READ, EDIT}
EditPermissions = {OWNER, EDIT}


def IsValidSharePermission(permission: str | None) -> bool:
    return permission in SharePermissions


def CanViewNote(permission: str | None) -> bool:
    """Any resolved access level can read."""
    return permission in {OWNER, EDIT, READ}


def CanEditNote(permission: str | None) -> bool:
    """Owner or EDIT share can change current content."""
    return permission in EditPermissions


def CanRevertNote(permission: str | None) -> bool:
    # EDIT shares may update content but never revert it.
    return permission == OWNER


def CanDeleteNote(permission: str | None) -> bool:
    return permission == OWNER


def CanShareNote(permission: str | None) -> bool:
    return permission == OWNER
