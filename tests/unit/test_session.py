"""Session lifecycle tests against a fake Godot executable."""

import asyncio
import time
from pathlib import Path

import pytest

from godot_session.config import Settings
from godot_session.lib.descriptor import RECEIVER_SCRIPT_NAME
from godot_session.lib.errors import (
    CommandTimeoutError,
    NoActiveProcessError,
    ProcessError,
    ProjectStateError,
    ProtocolError,
    ReceiverConnectionError,
    RuntimeNotFoundError,
    SessionEndedError,
)
from godot_session.session import ExecutableResolver, SessionManager

ORIGINAL_DESCRIPTOR = b'[application]\nconfig/name="X"\n'


def make_manager(settings: Settings, locator: ExecutableResolver) -> SessionManager:
    return SessionManager(settings=settings, locator=locator)


async def wait_until_idle(manager: SessionManager, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while manager.phase != "idle":
        assert time.monotonic() < deadline, f"still {manager.phase}"
        await asyncio.sleep(0.02)


class TestStartStop:
    @pytest.mark.asyncio
    async def test_start_then_stop_restores_project_exactly(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        descriptor = godot_project / "project.godot"
        script = godot_project / RECEIVER_SCRIPT_NAME
        manager = make_manager(session_settings, stub_locator)

        info = await manager.start(godot_project)
        assert manager.phase == "running"
        assert info.pid > 0
        assert info.receiver.endswith(f":{session_settings.receiver_port}")
        modified = descriptor.read_text()
        assert "[autoload]" in modified
        assert '_McpInputReceiver="*res://.mcp_input_receiver.gd"' in modified
        assert script.is_file()

        final = await manager.stop()
        assert "autoload registered" in final.output
        assert descriptor.read_bytes() == ORIGINAL_DESCRIPTOR
        assert not script.exists()
        assert manager.phase == "idle"

    @pytest.mark.asyncio
    async def test_stop_twice_is_safe(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        await manager.start(godot_project)
        await manager.stop()
        with pytest.raises(NoActiveProcessError):
            await manager.stop()
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR

    @pytest.mark.asyncio
    async def test_scene_is_passed_to_godot(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        info = await manager.start(godot_project, scene="res://levels/boss.tscn")
        assert info.scene == "res://levels/boss.tscn"
        final = await manager.stop()
        assert "scene res://levels/boss.tscn" in final.output

    @pytest.mark.asyncio
    async def test_start_replaces_running_session(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        first = await manager.start(godot_project)
        second = await manager.start(godot_project)
        assert first.pid != second.pid
        assert (godot_project / "project.godot").read_text().count("_McpInputReceiver") == 1
        await manager.stop()
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR

    @pytest.mark.asyncio
    async def test_context_manager_tears_down(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        async with make_manager(session_settings, stub_locator) as manager:
            await manager.start(godot_project)
        assert manager.phase == "idle"
        assert manager.state.process is None
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR


class TestStartFailures:
    @pytest.mark.asyncio
    async def test_missing_project_file(
        self, tmp_path: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        with pytest.raises(ProjectStateError, match="Not a valid Godot project"):
            await manager.start(tmp_path)
        assert manager.phase == "idle"

    @pytest.mark.asyncio
    async def test_missing_godot_leaves_project_untouched(
        self, godot_project: Path, session_settings: Settings, missing_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, missing_locator)
        with pytest.raises(RuntimeNotFoundError):
            await manager.start(godot_project)
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR
        assert not (godot_project / RECEIVER_SCRIPT_NAME).exists()
        assert manager.phase == "idle"

    @pytest.mark.asyncio
    async def test_launch_failure_restores_project(
        self,
        godot_project: Path,
        session_settings: Settings,
        locator_factory: type,
        tmp_path: Path,
    ) -> None:
        manager = make_manager(session_settings, locator_factory(tmp_path / "not-godot"))
        with pytest.raises(ProcessError, match="Failed to start Godot process"):
            await manager.start(godot_project)
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR
        assert not (godot_project / RECEIVER_SCRIPT_NAME).exists()
        assert manager.phase == "idle"

    @pytest.mark.asyncio
    async def test_exit_during_startup_is_reported(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        original = b'[application]\nconfig/name="X"\n; exit_early\n'
        (godot_project / "project.godot").write_bytes(original)
        manager = make_manager(session_settings, stub_locator)

        with pytest.raises(ProcessError, match="exited during startup with code 7"):
            await manager.start(godot_project)
        assert (godot_project / "project.godot").read_bytes() == original
        assert not (godot_project / RECEIVER_SCRIPT_NAME).exists()

    @pytest.mark.asyncio
    async def test_stale_receiver_entry_is_cleaned(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        stale = (
            b'[application]\nconfig/name="X"\n\n[autoload]\n\n'
            b'_McpInputReceiver="*res://.mcp_input_receiver.gd"\n'
        )
        (godot_project / "project.godot").write_bytes(stale)
        manager = make_manager(session_settings, stub_locator)

        await manager.start(godot_project)
        assert (godot_project / "project.godot").read_text().count("_McpInputReceiver") == 1
        await manager.stop()
        assert (godot_project / "project.godot").read_bytes() == (
            b'[application]\nconfig/name="X"\n\n[autoload]\n\n'
        )

    @pytest.mark.asyncio
    async def test_non_utf8_project_is_a_state_error(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        latin1 = b'[application]\nconfig/name="Caf\xe9"\n'
        (godot_project / "project.godot").write_bytes(latin1)
        manager = make_manager(session_settings, stub_locator)

        with pytest.raises(ProjectStateError, match="Failed to prepare project"):
            await manager.start(godot_project)
        assert manager.phase == "idle"
        assert manager.state.snapshot is None
        assert (godot_project / "project.godot").read_bytes() == latin1
        assert not (godot_project / RECEIVER_SCRIPT_NAME).exists()


class TestCommands:
    @pytest.mark.asyncio
    async def test_commands_round_trip_in_order(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        async with make_manager(session_settings, stub_locator) as manager:
            await manager.start(godot_project)
            replies = [await manager.send({"type": f"cmd{n}"}) for n in range(3)]
            assert [r["type"] for r in replies] == ["cmd0", "cmd1", "cmd2"]
            state = await manager.send({"type": "get_state"})
            assert state["ok"] is True

    @pytest.mark.asyncio
    async def test_send_without_session_mentions_interactive_session(
        self, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        with pytest.raises(ReceiverConnectionError, match="interactive session"):
            await manager.send({"type": "get_state"})

    @pytest.mark.asyncio
    async def test_garbage_reply_is_a_protocol_error(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        async with make_manager(session_settings, stub_locator) as manager:
            await manager.start(godot_project)
            with pytest.raises(ProtocolError):
                await manager.send({"type": "garbage"})
            assert (await manager.send({"type": "ping"}))["ok"] is True

    @pytest.mark.asyncio
    async def test_unanswered_command_times_out(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        fast = session_settings.model_copy(update={"command_timeout_seconds": 0.2})
        async with make_manager(fast, stub_locator) as manager:
            await manager.start(godot_project)
            with pytest.raises(CommandTimeoutError, match="'ignore'"):
                await manager.send({"type": "ignore"})
            assert manager.phase == "running"
            assert (await manager.send({"type": "ping"}))["type"] == "ping"

    @pytest.mark.asyncio
    async def test_stop_rejects_pending_command(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        await manager.start(godot_project)
        pending = asyncio.create_task(manager.send({"type": "ignore"}))
        while manager.state.pending is None:
            await asyncio.sleep(0.01)
        await manager.stop()
        with pytest.raises(SessionEndedError):
            await pending


class TestRuntimeExit:
    @pytest.mark.asyncio
    async def test_crash_tears_down_and_next_send_fails_fast(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        manager = make_manager(session_settings, stub_locator)
        await manager.start(godot_project)

        with pytest.raises(ReceiverConnectionError):
            await manager.send({"type": "crash"})
        await wait_until_idle(manager)

        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR
        assert not (godot_project / RECEIVER_SCRIPT_NAME).exists()
        with pytest.raises(ReceiverConnectionError):
            await manager.send({"type": "get_state"})
        assert manager.output().returncode == 3

        await manager.start(godot_project)
        assert (await manager.send({"type": "ping"}))["ok"] is True
        await manager.stop()
        assert (godot_project / "project.godot").read_bytes() == ORIGINAL_DESCRIPTOR

    @pytest.mark.asyncio
    async def test_output_filters(
        self, godot_project: Path, session_settings: Settings, stub_locator: ExecutableResolver
    ) -> None:
        async with make_manager(session_settings, stub_locator) as manager:
            await manager.start(godot_project)
            errors = manager.output(errors_only=True)
            assert errors.output == ["WARNING: fake renderer in use"]
            assert errors.errors == ["ERROR: something went wrong"]
            assert manager.output(tail=1).output == ["WARNING: fake renderer in use"]


def test_teardown_when_idle_is_a_noop(session_settings: Settings, stub_locator: ExecutableResolver) -> None:
    manager = make_manager(session_settings, stub_locator)
    manager.teardown()
    manager.teardown()
    assert manager.phase == "idle"
