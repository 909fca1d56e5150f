"""Unit tests for the append-only Execution Log."""

import asyncio

import pytest

from orchestrationCore.execution.log import ExecutionLog, LogEvent


class TestAppend:
    """追加与快照"""

    def test_sequence_follows_append_order(self):
        log = ExecutionLog("plan-1")
        log.append("a", LogEvent.DISPATCHED)
        log.append("b", LogEvent.DISPATCHED)
        log.append("a", LogEvent.SUCCEEDED, attempts=1)

        assert [e.sequence for e in log.entries()] == [0, 1, 2]
        assert [(e.step_id, e.event) for e in log] == [
            ("a", LogEvent.DISPATCHED),
            ("b", LogEvent.DISPATCHED),
            ("a", LogEvent.SUCCEEDED),
        ]
        assert len(log) == 3

    def test_entries_are_immutable(self):
        log = ExecutionLog("plan-1")
        entry = log.append("a", LogEvent.FAILED, error="timeout")

        with pytest.raises(AttributeError):
            entry.event = LogEvent.SUCCEEDED
        with pytest.raises(TypeError):
            entry.detail["error"] = "other"

    def test_snapshot_from_offset(self):
        log = ExecutionLog("plan-1")
        for step_id in "abc":
            log.append(step_id, LogEvent.DISPATCHED)

        assert [e.step_id for e in log.entries(offset=1)] == ["b", "c"]

    def test_count_and_for_step(self):
        log = ExecutionLog("plan-1")
        log.append("a", LogEvent.FAILED)
        log.append("a", LogEvent.RETRIED)
        log.append("a", LogEvent.FAILED)
        log.append("b", LogEvent.FAILED)

        assert log.count("a", LogEvent.FAILED) == 2
        assert [e.event for e in log.for_step("a")] == [LogEvent.FAILED, LogEvent.RETRIED, LogEvent.FAILED]

    def test_closed_log_rejects_appends(self):
        log = ExecutionLog("plan-1")
        log.close()

        assert log.closed
        with pytest.raises(RuntimeError):
            log.append("a", LogEvent.DISPATCHED)

    def test_to_dict(self):
        log = ExecutionLog("plan-1")
        entry = log.append("a", LogEvent.REJECTED, reason="empty")

        data = entry.to_dict()

        assert data["event"] == "rejected"
        assert data["detail"] == {"reason": "empty"}
        assert data["plan_id"] == "plan-1"


class TestSubscribe:
    """异步订阅：可从任意偏移量恢复"""

    @pytest.mark.asyncio
    async def test_subscriber_sees_live_entries_until_close(self):
        log = ExecutionLog("plan-1")
        log.append("a", LogEvent.DISPATCHED)

        async def collect():
            return [e.event async for e in log.subscribe()]

        reader = asyncio.create_task(collect())
        await asyncio.sleep(0)
        log.append("a", LogEvent.VALIDATED)
        await asyncio.sleep(0)
        log.append("a", LogEvent.SUCCEEDED)
        log.close()

        assert await asyncio.wait_for(reader, timeout=1) == [
            LogEvent.DISPATCHED,
            LogEvent.VALIDATED,
            LogEvent.SUCCEEDED,
        ]

    @pytest.mark.asyncio
    async def test_resume_from_offset(self):
        log = ExecutionLog("plan-1")
        for step_id in "abcd":
            log.append(step_id, LogEvent.DISPATCHED)
        log.close()

        resumed = [e.step_id async for e in log.subscribe(offset=2)]

        assert resumed == ["c", "d"]

    @pytest.mark.asyncio
    async def test_progress_channel_is_separate(self):
        log = ExecutionLog("plan-1")
        log.append("a", LogEvent.DISPATCHED)
        log.publish_progress("a", "chunk-1")
        log.publish_progress("a", "chunk-2")
        log.close()

        chunks = [p.chunk async for p in log.subscribe_progress()]

        assert chunks == ["chunk-1", "chunk-2"]
        assert len(log) == 1
        assert [p.sequence for p in log.progress()] == [0, 1]
