"""Unit tests for the Supervisor."""

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.schema import Outcome
from orchestrationCore.agents.workers import FunctionWorker
from orchestrationCore.execution.log import LogEvent
from orchestrationCore.planning.schema import Intent, IntentType, PlanStatus
from orchestrationCore.runtime.supervisor import ResponseStatus, Supervisor, UserRequest
from orchestrationCore.utils.errors import NonRetryableInputError, WorkerTimeout

from conftest import ARCHITECTURE_PAYLOAD, CODE_PAYLOAD, HANG


@pytest.fixture
def supervisor(registry, settings):
    return Supervisor(registry, settings=settings)


def _request(intent_type=IntentType.CREATE_PROJECT, session_id=None, **slots):
    return UserRequest(user_id="u-1", intent=Intent(intent_type, slots=slots), text="build me a todo app",
                       session_id=session_id)


class TestResponses:
    """响应聚合"""

    @pytest.mark.asyncio
    async def test_completed_returns_outputs_in_dependency_order(self, supervisor):
        response = await supervisor.process_user_request(_request())

        assert response.status == ResponseStatus.COMPLETED
        assert response.ok
        assert [o.agent_type for o in response.outputs] == ["planner", "coder"]
        assert [o.payload for o in response.outputs] == [ARCHITECTURE_PAYLOAD, CODE_PAYLOAD]
        assert response.failures == []

    @pytest.mark.asyncio
    async def test_partial_failure_lists_failed_steps(self, supervisor, workers):
        workers["coder"].script = [WorkerTimeout("t")] * 3

        response = await supervisor.process_user_request(_request())

        assert response.status == ResponseStatus.PARTIALLY_FAILED
        assert [o.agent_type for o in response.outputs] == ["planner"]
        failure = response.failures[0]
        assert failure.agent_type == "coder"
        assert failure.status == "terminally-failed"
        assert failure.error == "timeout"

    @pytest.mark.asyncio
    async def test_skipped_steps_are_itemized(self, supervisor, workers):
        workers["planner"].script = [NonRetryableInputError("bad")]

        response = await supervisor.process_user_request(_request())

        assert response.status == ResponseStatus.FAILED
        assert [(f.agent_type, f.status) for f in response.failures] == [
            ("planner", "terminally-failed"),
            ("coder", "skipped"),
        ]

    @pytest.mark.asyncio
    async def test_rejection_reason_is_reported(self, supervisor, workers):
        workers["coder"].default = {"files": []}

        response = await supervisor.process_user_request(_request(IntentType.GENERATE_CODE))

        failure = response.failures[0]
        assert failure.error == "validation_rejected"
        assert "no files" in failure.reason

    @pytest.mark.asyncio
    async def test_unclassified_worker_failure_is_not_raised(self, supervisor, workers):
        workers["tutor"].script = [Outcome(success=False, detail="provider said no")] * 3

        response = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        assert response.status == ResponseStatus.FAILED
        assert response.failures[0].error == "service_unavailable"
        assert supervisor.get_log(response.plan_id).closed

    @pytest.mark.asyncio
    async def test_to_dict(self, supervisor):
        response = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        data = response.to_dict()

        assert data["status"] == "completed"
        assert data["outputs"][0]["agent_type"] == "tutor"
        assert data["plan_id"] == response.plan_id


class TestConfigurationErrors:
    """配置错误：直接返回，不派发任何步骤"""

    @pytest.mark.asyncio
    async def test_unregistered_agent_type(self, settings, workers):
        registry = CapabilityRegistry()
        for agent_type in ("planner", "coder", "tutor"):
            registry.register(agent_type, workers[agent_type])
        supervisor = Supervisor(registry, settings=settings)

        response = await supervisor.process_user_request(_request(IntentType.DEPLOY_APP))

        assert response.status == ResponseStatus.CONFIGURATION_ERROR
        assert response.plan_id is None
        assert workers["coder"].calls == []

    @pytest.mark.asyncio
    async def test_malformed_subtasks(self, supervisor, workers):
        response = await supervisor.process_user_request(
            UserRequest(user_id="u-1", intent=Intent(IntentType.GENERATE_CODE, slots={"subtasks": ["coder", "tutor"]})),
        )

        assert response.status == ResponseStatus.CONFIGURATION_ERROR
        assert response.plan_id is None
        assert workers["coder"].calls == []

    @pytest.mark.asyncio
    async def test_text_without_classifier(self, supervisor):
        response = await supervisor.process_user_request(UserRequest(user_id="u-1", text="hello"))

        assert response.status == ResponseStatus.CONFIGURATION_ERROR
        assert "意图" in response.message

    @pytest.mark.asyncio
    async def test_text_with_classifier(self, registry, settings, mocker):
        classifier = mocker.Mock()
        classifier.classify = mocker.AsyncMock(return_value=Intent(IntentType.EXPLAIN_CODE, confidence=0.9))
        supervisor = Supervisor(registry, classifier=classifier, settings=settings)

        response = await supervisor.process_user_request(UserRequest(user_id="u-1", text="what is a closure?"))

        assert response.status == ResponseStatus.COMPLETED
        text, context = classifier.classify.call_args.args
        assert text == "what is a closure?"
        assert context.user_id == "u-1"


class TestSessions:
    """会话上下文"""

    @pytest.mark.asyncio
    async def test_history_grows_across_requests(self, supervisor, workers):
        first = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))
        await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE, session_id=first.session_id))

        history = supervisor.session(first.session_id).history
        assert [type(m) for m in history] == [HumanMessage, AIMessage, HumanMessage, AIMessage]

    @pytest.mark.asyncio
    async def test_plan_sees_snapshot_taken_at_build_time(self, settings):
        seen = []

        async def tutor(task, ctx):
            seen.append(ctx)
            return "ok"

        registry = CapabilityRegistry()
        registry.register("tutor", FunctionWorker("tutor-fn", tutor))
        supervisor = Supervisor(registry, settings=settings)

        response = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        assert [type(m) for m in seen[0].history] == [HumanMessage]
        assert len(supervisor.session(response.session_id).history) == 2

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, supervisor):
        a = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))
        b = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        assert a.session_id != b.session_id
        assert len(supervisor.session(a.session_id).history) == 2


class TestControl:
    """取消、日志查询与关闭"""

    @pytest.mark.asyncio
    async def test_get_plan_and_log(self, supervisor):
        response = await supervisor.process_user_request(_request(IntentType.GENERATE_CODE))

        assert supervisor.get_plan(response.plan_id).status == PlanStatus.COMPLETED
        assert supervisor.get_log(response.plan_id).closed
        with pytest.raises(KeyError):
            supervisor.get_plan("nope")

    @pytest.mark.asyncio
    async def test_cancel_running_plan(self, supervisor, workers):
        workers["planner"].script = [HANG]
        started = []

        request = asyncio.create_task(supervisor.process_user_request(
            _request(), on_plan_started=lambda plan, log: started.append(plan.id),
        ))
        while not workers["planner"].calls:
            await asyncio.sleep(0)

        assert supervisor.cancel(started[0]) is True
        response = await asyncio.wait_for(request, timeout=1)

        assert response.status == ResponseStatus.FAILED
        assert supervisor.get_log(started[0]).count(response.failures[0].step_id, LogEvent.ABORTED) == 1
        assert supervisor.cancel(started[0]) is False

    @pytest.mark.asyncio
    async def test_cancel_session_and_close(self, supervisor, workers):
        workers["tutor"].script = [HANG]
        request = asyncio.create_task(supervisor.process_user_request(
            UserRequest(user_id="u-1", intent=Intent(IntentType.EXPLAIN_CODE), session_id="s-42"),
        ))
        while not workers["tutor"].calls:
            await asyncio.sleep(0)

        assert supervisor.cancel_session("s-42") == 1
        response = await asyncio.wait_for(request, timeout=1)
        await supervisor.close()

        assert response.status == ResponseStatus.FAILED
        assert supervisor.running_plans() == []
        with pytest.raises(RuntimeError):
            await supervisor.process_user_request(_request())

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_plans(self, supervisor, workers):
        workers["coder"].script = [HANG]
        request = asyncio.create_task(supervisor.process_user_request(_request(IntentType.GENERATE_CODE)))
        while not workers["coder"].calls:
            await asyncio.sleep(0)

        await asyncio.wait_for(supervisor.close(), timeout=1)
        response = await request

        assert response.status == ResponseStatus.FAILED
        assert workers["coder"].cancelled == 1


class TestRetention:
    """已结束计划与会话的清理"""

    @pytest.mark.asyncio
    async def test_forget_settled_plan(self, supervisor):
        response = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        assert supervisor.forget(response.plan_id) is True
        assert supervisor.forget(response.plan_id) is False
        with pytest.raises(KeyError):
            supervisor.get_log(response.plan_id)

    @pytest.mark.asyncio
    async def test_running_plan_is_not_forgotten(self, supervisor, workers):
        workers["tutor"].script = [HANG]
        started = []
        request = asyncio.create_task(supervisor.process_user_request(
            UserRequest(user_id="u-1", intent=Intent(IntentType.EXPLAIN_CODE), session_id="s-7"),
            on_plan_started=lambda plan, log: started.append(plan.id),
        ))
        while not workers["tutor"].calls:
            await asyncio.sleep(0)

        assert supervisor.forget(started[0]) is False
        with pytest.raises(RuntimeError):
            supervisor.forget_session("s-7")

        supervisor.cancel(started[0])
        await asyncio.wait_for(request, timeout=1)

    @pytest.mark.asyncio
    async def test_forget_session(self, supervisor):
        first = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))
        second = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE, session_id=first.session_id))
        other = await supervisor.process_user_request(_request(IntentType.EXPLAIN_CODE))

        assert supervisor.forget_session(first.session_id) == 2

        with pytest.raises(KeyError):
            supervisor.session(first.session_id)
        with pytest.raises(KeyError):
            supervisor.get_plan(second.plan_id)
        assert supervisor.get_plan(other.plan_id).status == PlanStatus.COMPLETED
