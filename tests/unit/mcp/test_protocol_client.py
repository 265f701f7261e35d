"""Unit tests for ProtocolClient against the scripted mock server."""

import asyncio
import json

import pytest
import pytest_asyncio

from lens_core.config import RuntimeConfig, ServerConfig
from lens_core.errors import (
    HandshakeError,
    LensError,
    NotReadyError,
    ProcessExit,
    RequestTimeout,
    SpawnError,
)
from lens_core.mcp import ProtocolClient, RpcFailure, RpcSuccess
from lens_core.types import ConnectionState


@pytest_asyncio.fixture
async def started(server_config, settings, logger):
    """Started client for the normal mode; stopped afterwards."""
    clients: list[ProtocolClient] = []

    async def _start(mode: str = "normal", **kwargs) -> ProtocolClient:
        client = ProtocolClient(server_config(mode, **kwargs), settings, logger)
        clients.append(client)
        await client.start()
        return client

    yield _start

    for client in clients:
        await client.stop()


class TestHandshake:
    """Tests for start() and the initialize exchange."""

    @pytest.mark.asyncio
    async def test_start_reaches_ready(self, started):
        """A well-behaved server completes the handshake."""
        client = await started()

        assert client.state == ConnectionState.READY
        assert client.is_running()
        assert client.pid is not None
        assert client.server_info.name == "mock-server"
        assert client.protocol_version == "2024-11-05"

    @pytest.mark.asyncio
    async def test_initialized_notification_sent(self, started):
        """notifications/initialized follows a successful initialize."""
        client = await started()

        reply = await client.request("initialized")

        assert reply.result == {"initialized": True}

    @pytest.mark.asyncio
    async def test_first_request_id_is_one(self, started):
        """initialize uses id 1, so the first caller request gets id 2."""
        client = await started()

        reply = await client.request("echo", {"x": 1})

        assert isinstance(reply, RpcSuccess)
        assert reply.id == 2
        assert reply.result == {"echo": {"x": 1}}

    @pytest.mark.asyncio
    async def test_garbage_output_fails_start(self, server_config, settings):
        """A server printing non-JSON and exiting fails the handshake."""
        client = ProtocolClient(server_config("garbage"), settings)

        with pytest.raises(HandshakeError) as exc_info:
            await client.start()

        assert exc_info.value.code == "HANDSHAKE_FAILED"
        assert isinstance(exc_info.value.cause, LensError)
        assert client.state == ConnectionState.ERRORED
        assert client.discarded_frames == 1

    @pytest.mark.asyncio
    async def test_initialize_error_fails_start(self, server_config, settings):
        """An error reply to initialize is a handshake failure."""
        client = ProtocolClient(server_config("init-error"), settings)

        with pytest.raises(HandshakeError) as exc_info:
            await client.start()

        assert "initialization refused" in exc_info.value.detail
        assert exc_info.value.cause.code == "RPC_ERROR"
        assert client.state == ConnectionState.ERRORED
        assert client.returncode is not None

    @pytest.mark.asyncio
    async def test_malformed_initialize_result_fails_start(self, server_config, settings):
        """A result that is not an InitializeResult is rejected."""
        client = ProtocolClient(server_config("malformed-init"), settings)

        with pytest.raises(HandshakeError):
            await client.start()

        assert client.state == ConnectionState.ERRORED

    @pytest.mark.asyncio
    async def test_silent_server_times_out(self, server_config):
        """No reply within request_timeout fails the handshake."""
        settings = RuntimeConfig(request_timeout=0.3, stop_timeout=2.0)
        client = ProtocolClient(server_config("silent"), settings)

        with pytest.raises(HandshakeError) as exc_info:
            await client.start()

        assert isinstance(exc_info.value.cause, RequestTimeout)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_missing_executable_raises_spawn_error(self, settings):
        """A missing command surfaces as SpawnError; no process exists."""
        config = ServerConfig(name="ghost", command="/nonexistent/lens-test-server")
        client = ProtocolClient(config, settings)

        with pytest.raises(SpawnError) as exc_info:
            await client.start()

        assert exc_info.value.code == "SPAWN_FAILED"
        assert exc_info.value.server_name == "ghost"
        assert client.pid is None
        assert client.state == ConnectionState.ERRORED

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, started):
        """A client is started at most once."""
        client = await started()

        with pytest.raises(LensError) as exc_info:
            await client.start()

        assert exc_info.value.code == "CLIENT_STATE_INVALID"

    @pytest.mark.asyncio
    async def test_env_overlay_reaches_process(self, started):
        """config.env is layered on top of the parent environment."""
        client = await started(env={"LENS_TEST_TOKEN": "secret-value"})

        reply = await client.request("env", {"name": "LENS_TEST_TOKEN"})
        path_reply = await client.request("env", {"name": "PATH"})

        assert reply.result == {"value": "secret-value"}
        assert path_reply.result["value"]


class TestRequests:
    """Tests for correlation, timeouts and errors."""

    @pytest.mark.asyncio
    async def test_request_before_start_not_ready(self, server_config, settings):
        """Calls before the handshake are rejected."""
        client = ProtocolClient(server_config(), settings)

        with pytest.raises(NotReadyError):
            await client.request("echo")
        with pytest.raises(NotReadyError):
            client.notify("notifications/cancelled")

    @pytest.mark.asyncio
    async def test_out_of_order_responses_reach_their_callers(self, started):
        """Responses answered in reverse order are matched by id."""
        client = await started()

        first = asyncio.create_task(client.request("hold", {"who": "first"}))
        second = asyncio.create_task(client.request("hold", {"who": "second"}))
        await asyncio.sleep(0.1)
        release = await client.request("release")

        first_reply, second_reply = await asyncio.gather(first, second)

        assert first_reply.result["params"] == {"who": "first"}
        assert second_reply.result["params"] == {"who": "second"}
        assert first_reply.id == first_reply.result["released"]
        assert second_reply.id == second_reply.result["released"]
        assert isinstance(release, RpcSuccess)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_error_response_is_rpc_failure(self, started):
        """A JSON-RPC error comes back as RpcFailure, not an exception."""
        client = await started()

        reply = await client.request("no/such/method")

        assert isinstance(reply, RpcFailure)
        assert reply.code == -32601
        assert "no/such/method" in reply.message
        assert reply.to_error("mock").code == "RPC_ERROR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [None, [], "ok", 7])
    async def test_non_object_result_is_rpc_success(self, started, value):
        """A result that is not an object still settles the caller."""
        client = await started()

        reply = await client.request("result", {"value": value}, timeout=2.0)

        assert isinstance(reply, RpcSuccess)
        assert reply.result == value
        assert client.discarded_frames == 0

    @pytest.mark.asyncio
    async def test_response_without_result_is_null_success(self, started):
        """A response with only an id settles with a null result."""
        client = await started()

        reply = await client.request("bare", timeout=2.0)

        assert isinstance(reply, RpcSuccess)
        assert reply.result is None

    @pytest.mark.asyncio
    async def test_timeout_then_late_response_dropped(self, started, log_output):
        """An expired request fails once; its late response is ignored."""
        client = await started()

        with pytest.raises(RequestTimeout) as exc_info:
            await client.request("hold", timeout=0.2)

        assert exc_info.value.method == "hold"
        assert client.pending_count == 0

        release = await client.request("release")
        assert isinstance(release, RpcSuccess)
        assert client.is_running()

        events = [json.loads(line).get("event") for line in log_output.getvalue().splitlines()]
        assert "request_timeout" in events
        assert "unmatched" in events

    @pytest.mark.asyncio
    async def test_noise_does_not_disturb_correlation(self, started):
        """Garbage, notifications, stray ids and server requests are skipped."""
        client = await started()

        reply = await client.request("noise")

        assert reply.result == {"ok": True}
        assert client.discarded_frames == 1
        assert client.is_running()

    @pytest.mark.asyncio
    async def test_split_response_reassembled(self, started):
        """A response written in two chunks arrives as one message."""
        client = await started()

        reply = await client.request("split")

        assert reply.result == {"text": "héllo wörld"}

    @pytest.mark.asyncio
    async def test_stderr_logged_at_debug(self, started, log_output):
        """Server stderr lines are logged and never parsed as frames."""
        client = await started()

        await client.request("stderr", {"lines": ["warming up", "ready"]})
        await asyncio.sleep(0.1)

        entries = [json.loads(line) for line in log_output.getvalue().splitlines()]
        stderr_entries = [e for e in entries if e.get("event") == "stderr"]
        assert [e["level"] for e in stderr_entries] == ["DEBUG", "DEBUG"]
        assert "warming up" in stderr_entries[0]["message"]
        assert client.discarded_frames == 0

    @pytest.mark.asyncio
    async def test_cancelled_caller_frees_slot(self, started):
        """Cancelling the awaiting task discards its pending entry."""
        client = await started()

        task = asyncio.create_task(client.request("never"))
        await asyncio.sleep(0.05)
        assert client.pending_count == 1

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert client.pending_count == 0


class TestListTools:
    """Tests for list_tools()."""

    @pytest.mark.asyncio
    async def test_lists_tools(self, started):
        """tools/list entries become ToolDescriptors."""
        client = await started()

        tools = await client.list_tools()

        assert [tool.name for tool in tools] == ["echo", "add"]
        assert tools[0].input_schema["type"] == "object"
        assert tools[1].input_schema is None

    @pytest.mark.asyncio
    async def test_error_yields_empty_list(self, started):
        """An RPC error is logged and yields []."""
        client = await started("tools-error")

        assert await client.list_tools() == []

    @pytest.mark.asyncio
    async def test_entries_without_name_skipped(self, started):
        """Entries without a string name are dropped."""
        client = await started("bad-tools")

        tools = await client.list_tools()

        assert [tool.name for tool in tools] == ["echo"]

    @pytest.mark.asyncio
    async def test_not_ready_yields_empty_list(self, server_config, settings):
        """list_tools() never raises."""
        client = ProtocolClient(server_config(), settings)

        assert await client.list_tools() == []


class TestLifecycle:
    """Tests for stop(), terminate() and unexpected exits."""

    @pytest.mark.asyncio
    async def test_stop_rejects_all_pending(self, started):
        """stop() with pending requests fails each with ProcessExit."""
        client = await started()

        tasks = [asyncio.create_task(client.request("never")) for _ in range(3)]
        await asyncio.sleep(0.1)
        assert client.pending_count == 3

        await client.stop()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, ProcessExit) for result in results)
        assert client.pending_count == 0
        assert client.state == ConnectionState.STOPPED
        assert client.returncode is not None

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, started):
        """A second stop() changes nothing."""
        client = await started()

        await client.stop()
        returncode = client.returncode
        await client.stop()

        assert client.state == ConnectionState.STOPPED
        assert client.returncode == returncode

    @pytest.mark.asyncio
    async def test_stop_on_idle_client_is_noop(self, server_config, settings):
        """Stopping a never-started client does nothing."""
        client = ProtocolClient(server_config(), settings)

        await client.stop()

        assert client.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_stop_kills_process_ignoring_sigterm(self, server_config):
        """A server that ignores SIGTERM is killed after stop_timeout."""
        settings = RuntimeConfig(request_timeout=5.0, stop_timeout=0.3)
        client = ProtocolClient(server_config("ignore-term"), settings)
        await client.start()

        await client.stop()

        assert client.state == ConnectionState.STOPPED
        assert client.returncode is not None
        assert client.returncode < 0

    @pytest.mark.asyncio
    async def test_unexpected_exit_fails_pending_and_calls_back(self, server_config, settings):
        """A crash rejects the in-flight request and fires on_exit."""
        exits: list[str] = []
        client = ProtocolClient(
            server_config(),
            settings,
            on_exit=lambda name, c: exits.append(name),
        )
        await client.start()

        with pytest.raises(ProcessExit):
            await client.request("crash")

        await asyncio.sleep(0)
        assert client.state == ConnectionState.ERRORED
        assert client.returncode == 3
        assert client.last_error.code == "PROCESS_EXITED"
        assert exits == ["mock"]
        await client.stop()

    @pytest.mark.asyncio
    async def test_exit_after_handshake_marks_errored(self, server_config, settings):
        """A server that exits right after initialize ends up errored."""
        client = ProtocolClient(server_config("exit-after-init"), settings)
        await client.start()

        for _ in range(50):
            if client.state == ConnectionState.ERRORED:
                break
            await asyncio.sleep(0.05)

        assert client.state == ConnectionState.ERRORED
        assert not client.is_running()
        await client.stop()

    @pytest.mark.asyncio
    async def test_terminate_without_waiting(self, started):
        """terminate() signals the process and releases the client."""
        client = await started()
        task = asyncio.create_task(client.request("never"))
        await asyncio.sleep(0.05)

        client.terminate()

        with pytest.raises(ProcessExit):
            await task
        assert client.state == ConnectionState.STOPPED
