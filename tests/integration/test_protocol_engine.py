import asyncio
import sys
from contextlib import asynccontextmanager

import pytest

from webdna_docs.config import EngineConfig
from webdna_docs.protocol.engine import (
    DuplicateRequestError,
    EngineClosedError,
    ProtocolEngine,
    WorkerState,
)
from webdna_docs.protocol.messages import (
    InvokeToolMessage,
    ListToolsMessage,
    ToolErrorMessage,
    ToolResultMessage,
    ToolsMessage,
)

RESTART_DELAY = 0.2


@asynccontextmanager
async def running_engine(command: list[str], **config: object):
    engine = ProtocolEngine(
        command,
        config=EngineConfig(restart_delay_seconds=RESTART_DELAY, terminate_grace_seconds=2.0, **config),
    )
    await engine.start()
    try:
        await wait_for_state(engine, WorkerState.READY)
        yield engine
    finally:
        await engine.shutdown()


async def wait_for_state(engine: ProtocolEngine, state: WorkerState, timeout: float = 10.0) -> None:
    async def _poll() -> None:
        while engine.state is not state:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


def echo(value: object, delay: float = 0.0, **fields: object) -> InvokeToolMessage:
    return InvokeToolMessage(tool="echo", params={"value": value, "delay": delay}, **fields)


@pytest.mark.asyncio
async def test_list_tools_is_correlated(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        response = await engine.send(ListToolsMessage(), timeout=5.0)

    assert isinstance(response, ToolsMessage)
    assert response.tools == [{"name": "echo"}]


@pytest.mark.asyncio
async def test_responses_are_matched_by_id_not_order(echo_worker_command: list[str]) -> None:
    completed: list[str] = []

    async def _call(engine: ProtocolEngine, value: str, delay: float):
        response = await engine.send(echo(value, delay), timeout=5.0)
        completed.append(value)
        return response

    async with running_engine(echo_worker_command) as engine:
        responses = await asyncio.gather(
            _call(engine, "slow", 0.4),
            _call(engine, "fast", 0.0),
            _call(engine, "medium", 0.2),
        )
        assert engine.pending_count == 0

    assert [r.result for r in responses] == [{"echo": "slow"}, {"echo": "fast"}, {"echo": "medium"}]
    assert all(isinstance(r, ToolResultMessage) for r in responses)
    assert completed == ["fast", "medium", "slow"]


@pytest.mark.asyncio
async def test_caller_supplied_id_is_echoed(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        response = await engine.send(echo(1, id="custom-id"), timeout=5.0)

    assert response.id == "custom-id"


@pytest.mark.asyncio
async def test_timeout_delivers_once_and_late_reply_is_dropped(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        response = await engine.send(echo("late", delay=0.5), timeout=0.1)

        assert isinstance(response, ToolErrorMessage)
        assert response.error.code == "TIMEOUT"
        assert engine.pending_count == 0

        # Let the late reply arrive; it must be discarded quietly.
        await asyncio.sleep(0.7)
        follow_up = await engine.send(echo("next"), timeout=5.0)

        summary = engine.stats.summary()

    assert follow_up.result == {"echo": "next"}
    assert summary["timeout_count"] == 1
    assert summary["ok_count"] == 1


@pytest.mark.asyncio
async def test_worker_crash_fails_every_pending_request_then_restarts(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        first_pid = engine.pid
        pending = [
            asyncio.create_task(engine.send(InvokeToolMessage(tool="silent"), timeout=30.0))
            for _ in range(3)
        ]
        await asyncio.sleep(0.1)
        assert engine.pending_count == 3

        crash = await engine.send(InvokeToolMessage(tool="crash"), timeout=30.0)
        responses = [crash, *await asyncio.gather(*pending)]

        assert len(responses) == 4
        assert all(isinstance(r, ToolErrorMessage) for r in responses)
        assert {r.error.code for r in responses} == {"WORKER_TERMINATED"}
        assert len({r.id for r in responses}) == 4
        assert engine.pending_count == 0
        assert engine.state in (WorkerState.DEGRADED, WorkerState.STARTING, WorkerState.READY)

        await wait_for_state(engine, WorkerState.READY, timeout=RESTART_DELAY + 5.0)
        assert engine.restart_count == 1
        assert engine.pid != first_pid

        recovered = await engine.send(echo("again"), timeout=5.0)
        summary = engine.stats.summary()

    assert recovered.result == {"echo": "again"}
    assert summary["terminated_count"] == 4


@pytest.mark.asyncio
async def test_malformed_worker_output_is_skipped(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        response = await engine.send(InvokeToolMessage(tool="noise", params={"value": 3}), timeout=5.0)
        assert engine.state is WorkerState.READY

    assert response.result == {"echo": 3}


@pytest.mark.asyncio
async def test_duplicate_pending_id_is_rejected(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        first = asyncio.create_task(engine.send(InvokeToolMessage(tool="silent", id="dup"), timeout=30.0))
        await asyncio.sleep(0.05)

        with pytest.raises(DuplicateRequestError):
            await engine.send(InvokeToolMessage(tool="silent", id="dup"), timeout=30.0)

    response = await first
    assert response.error.code == "WORKER_TERMINATED"


@pytest.mark.asyncio
async def test_restart_limit_leaves_engine_unavailable(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command, max_restarts=0) as engine:
        await engine.send(InvokeToolMessage(tool="crash"), timeout=30.0)
        await wait_for_state(engine, WorkerState.TERMINATED)

        response = await engine.send(echo(1), timeout=5.0)

    assert response.error.code == "WORKER_UNAVAILABLE"


@pytest.mark.asyncio
async def test_send_after_shutdown_raises(echo_worker_command: list[str]) -> None:
    async with running_engine(echo_worker_command) as engine:
        pass

    assert engine.state is WorkerState.TERMINATED
    with pytest.raises(EngineClosedError):
        await engine.send(echo(1))


@pytest.mark.asyncio
async def test_start_raises_when_command_cannot_spawn(tmp_path) -> None:
    engine = ProtocolEngine([str(tmp_path / "missing-binary")])

    with pytest.raises(OSError):
        await engine.start()
    assert engine.state is WorkerState.DEGRADED
    await engine.shutdown()


@pytest.mark.asyncio
async def test_worker_that_exits_immediately_is_restarted() -> None:
    engine = ProtocolEngine(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        config=EngineConfig(restart_delay_seconds=0.05, max_restarts=2),
    )
    await engine.start()
    try:
        await wait_for_state(engine, WorkerState.TERMINATED)
    finally:
        await engine.shutdown()

    assert engine.restart_count == 2
