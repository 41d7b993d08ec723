import pytest

from openclaw.errors import ValidationError
from openclaw.workspace import GroupWorkspaceManager, WorkspaceAccessControl, compile_glob, match_paths
from openclaw.workspace.access_control import is_private_file
from openclaw.workspace.types import AccessControl, SessionType, WorkspaceType


@pytest.mark.parametrize("pattern,path,expected", [
    ("**/*", "a.md", True),
    ("**/*", "deep/nested/a.md", True),
    ("shared/**/*", "shared/a.md", True),
    ("shared/**/*", "shared/x/y/a.md", True),
    ("shared/**/*", "sharedx/a.md", False),
    ("*.md", "dir/a.md", False),
    ("RULES.md", "RULES.md", True),
    ("notes-?.md", "notes-1.md", True),
])
def test_compile_glob(pattern, path, expected):
    assert bool(compile_glob(pattern).match(path)) is expected


def test_private_files():
    assert is_private_file("MEMORY.md")
    assert is_private_file("memory/2024-01-02.md")
    assert is_private_file(".private/key.txt")
    assert not is_private_file("shared/MEMORY-notes.md")
    assert match_paths("shared\\a.md", ["shared/**/*"])


@pytest.fixture
async def setup(groups_root, agent_root, clock):
    groups = GroupWorkspaceManager(groups_root, clock=clock)
    groups.ensure_group_workspace("g1", "Core", "alice")
    await groups.add_member("g1", "bob", "alice")
    return groups, WorkspaceAccessControl(groups, agent_root=agent_root)


async def test_dm_session_uses_agent_workspace(setup, agent_root):
    _, acl = setup
    ws = acl.resolve_workspace("cli:main", "dm", "alice")
    assert ws.type is WorkspaceType.AGENT
    assert ws.root_dir == agent_root / "workspace-alice"
    assert ws.group_id is None
    assert acl.check_file_access(ws.root_dir / "MEMORY.md", "delete", ws).allowed


async def test_group_session_without_group_id_falls_back_to_agent(setup):
    _, acl = setup
    ws = acl.resolve_workspace("feishu:x", SessionType.GROUP, "alice")
    assert ws.type is WorkspaceType.AGENT


async def test_group_session_with_traversing_group_id_is_rejected(setup, groups_root):
    _, acl = setup
    with pytest.raises(ValidationError):
        acl.resolve_workspace("feishu:x", "group", "mallory", group_id="..")
    assert groups_root.is_dir()


async def test_group_member_permissions(setup, groups_root):
    _, acl = setup
    member = acl.resolve_workspace("feishu:g1", "group", "bob", group_id="g1")
    assert member.root_dir == groups_root / "g1"

    plan = member.root_dir / "shared" / "plan.md"
    assert acl.check_file_access(plan, "write", member).allowed
    denied = acl.check_file_access(plan, "delete", member)
    assert denied.reason == "No delete permission: shared/plan.md"

    admin = acl.resolve_workspace("feishu:g1", "group", "alice", group_id="g1")
    assert acl.check_file_access(plan, "delete", admin).allowed

    outside = acl.check_file_access(member.root_dir / "secrets.txt", "read", member)
    assert outside.reason == "secrets.txt is not in the allowed paths"


async def test_non_member_is_blocked(setup):
    _, acl = setup
    ws = acl.resolve_workspace("feishu:g1", "channel", "mallory", group_id="g1")
    result = acl.check_file_access(ws.root_dir / "RULES.md", "read", ws)
    assert result.reason == "RULES.md is blocked"


async def test_cross_workspace_rules(setup, agent_root, tmp_path):
    _, acl = setup
    ws = acl.resolve_workspace("feishu:g1", "group", "bob", group_id="g1")

    own_private = agent_root / "workspace-bob" / "MEMORY.md"
    result = acl.check_file_access(own_private, "read", ws)
    assert not result.allowed
    assert result.suggested_path == ws.root_dir / "shared" / "MEMORY.md"

    assert acl.check_file_access(agent_root / "workspace-bob" / "TOOLS.md", "read", ws).allowed

    other = acl.check_file_access(agent_root / "workspace-alice" / "notes.md", "read", ws)
    assert other.reason == "Access to another agent's workspace is denied"

    # Traversal is normalized before the check
    sneaky = ws.root_dir / ".." / ".." / "home" / "workspace-alice" / "x.md"
    assert not acl.check_file_access(sneaky, "read", ws).allowed

    elsewhere = acl.check_file_access(tmp_path / "tmp.txt", "read", ws)
    assert elsewhere.allowed
    assert elsewhere.suggested_path == ws.root_dir / "shared" / "tmp.txt"


async def test_intercept_file_operation(setup, agent_root):
    _, acl = setup
    ws = acl.resolve_workspace("feishu:g1", "group", "bob", group_id="g1")
    plan = ws.root_dir / "shared" / "plan.md"
    assert acl.intercept_file_operation(plan, "write", ws) == plan
    assert acl.intercept_file_operation(agent_root / "workspace-bob" / "MEMORY.md", "read", ws) == \
        ws.root_dir / "shared" / "MEMORY.md"
    assert acl.intercept_file_operation(agent_root / "workspace-alice" / "a.md", "read", ws) is None


async def test_file_permissions_and_validation(setup):
    _, acl = setup
    ws = acl.resolve_workspace("feishu:g1", "group", "bob", group_id="g1")
    perms = acl.get_file_permissions(ws.root_dir / "decisions" / "adr-1.md", ws)
    assert (perms.can_read, perms.can_write, perms.can_delete) == (True, True, False)

    assert acl.validate_access_control(ws.access_control)
    assert not acl.validate_access_control(AccessControl())
    with pytest.raises(ValueError):
        acl.check_file_access(ws.root_dir / "RULES.md", "execute", ws)
