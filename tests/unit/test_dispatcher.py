"""Unit tests for GenerationDispatcher."""

import asyncio

import pytest

from portrait_pipeline.core.dispatcher import GenerationDispatcher
from portrait_pipeline.core.exceptions import APIError, GenerationAggregateError
from portrait_pipeline.core.models import GenerationTask, TaskState
from portrait_pipeline.core.observability import StructuredLogger
from portrait_pipeline.testing.fakes import (
    FakeHTTPClient,
    FakeLogger,
    FakeSleeper,
    create_test_config,
    create_test_templates,
    style_matcher,
)

IDCARD = "f_idcard_female"
BUSINESS = "f_business_female"


def results(*urls):
    return {"output": {"task_status": "SUCCEEDED", "results": [{"url": u} for u in urls]}}


def make_dispatcher(client, config, sleeper=None):
    return GenerationDispatcher(client, config, FakeLogger(), sleep=sleeper or FakeSleeper())


class TestGenerate:
    """Tests for the fan-out/fan-in result policy."""

    def test_results_follow_template_order_not_completion_order(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json(
            "POST", config.generation_url, results("a1", "a2"),
            match=style_matcher(IDCARD), delay_seconds=0.05,
        )
        client.add_json("POST", config.generation_url, results("b1"), match=style_matcher(BUSINESS))

        urls = asyncio.run(
            make_dispatcher(client, config).generate("res-1", create_test_templates())
        )

        assert urls == ["a1", "a2", "b1"]
        completed_styles = [r.json["parameters"]["style"] for r in client.completed]
        assert completed_styles == [BUSINESS, IDCARD]

    def test_request_payload_and_headers(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, results("a"))

        asyncio.run(
            make_dispatcher(client, config).generate("res-9", create_test_templates(IDCARD))
        )

        request = client.requests[0]
        assert request.headers["Authorization"] == "Bearer test-key"
        assert request.headers["X-DashScope-Async"] == "enable"
        assert request.json == {
            "model": "facechain-generation",
            "parameters": {"style": IDCARD, "size": "768*1024", "n": 4},
            "resources": [{"resource_id": "res-9", "resource_type": "facelora"}],
        }

    def test_queued_task_is_polled(self):
        config = create_test_config(generation_interval=2.0)
        client = FakeHTTPClient()
        client.add_json(
            "POST", config.generation_url,
            {"output": {"task_id": "task-7", "task_status": "PENDING"}},
        )
        client.add_json(
            "GET", f"{config.tasks_url}/task-7",
            {"output": {"task_status": "RUNNING"}},
            {"output": {"task_status": "RUNNING"}},
            {"output": {"task_status": "SUCCEEDED", "results": [{"url": "q1"}]}},
        )
        sleeper = FakeSleeper()

        urls = asyncio.run(
            make_dispatcher(client, config, sleeper).generate(
                "res-1", create_test_templates(IDCARD)
            )
        )

        assert urls == ["q1"]
        assert len(client.requests_to(f"{config.tasks_url}/task-7")) == 3
        assert sleeper.calls == [2.0, 2.0]

    def test_root_level_image_url(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, {"image_url": "https://img/x.png"})

        urls = asyncio.run(
            make_dispatcher(client, config).generate("res-1", create_test_templates(IDCARD))
        )
        assert urls == ["https://img/x.png"]


class TestGenerateFailures:
    """Tests for partial and total failure."""

    def test_one_failure_discards_partial_success(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, results("a1"), match=style_matcher(IDCARD))
        client.add_json(
            "POST", config.generation_url, {"message": "busy"},
            status_code=500, match=style_matcher(BUSINESS),
        )

        with pytest.raises(GenerationAggregateError) as exc_info:
            asyncio.run(make_dispatcher(client, config).generate("res-1", create_test_templates()))

        error = exc_info.value
        assert error.succeeded == 1
        assert error.total == 2
        assert "1 of 2 succeeded" in str(error)
        assert "Generation request failed with status 500" in str(error)

    def test_all_failures_are_aggregated_in_template_order(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json(
            "POST", config.generation_url,
            {"output": {"task_status": "FAILED", "message": "bad style A"}},
            match=style_matcher(IDCARD), delay_seconds=0.02,
        )
        client.add_json(
            "POST", config.generation_url,
            {"output": {"task_status": "FAILED", "message": "bad style B"}},
            match=style_matcher(BUSINESS),
        )

        with pytest.raises(GenerationAggregateError) as exc_info:
            asyncio.run(make_dispatcher(client, config).generate("res-1", create_test_templates()))

        error = exc_info.value
        assert error.succeeded == 0
        assert error.messages == ["API error: bad style A", "API error: bad style B"]
        assert "failed for all templates" in str(error)

    def test_generation_poll_timeout(self):
        config = create_test_config(generation_max_attempts=2, generation_interval=3.0)
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, {"output": {"task_id": "task-1"}})
        client.add_json("GET", f"{config.tasks_url}/task-1", {"output": {"task_status": "RUNNING"}})
        sleeper = FakeSleeper()

        with pytest.raises(GenerationAggregateError, match="Generation task timeout after 2 attempts"):
            asyncio.run(
                make_dispatcher(client, config, sleeper).generate(
                    "res-1", create_test_templates(IDCARD)
                )
            )
        assert sleeper.calls == [3.0, 3.0]
        assert len(client.requests_to(f"{config.tasks_url}/task-1")) == 2

    def test_polled_task_failure_reports_service_message(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, {"output": {"task_id": "task-1"}})
        client.add_json(
            "GET", f"{config.tasks_url}/task-1",
            {"output": {"task_status": "RUNNING"}},
            {"output": {"task_status": "FAILED", "error_msg": "No face detected"}},
        )
        dispatcher = GenerationDispatcher(
            client, config, StructuredLogger("test-dispatcher"), sleep=FakeSleeper()
        )

        with pytest.raises(GenerationAggregateError) as exc_info:
            asyncio.run(dispatcher.generate("res-1", create_test_templates(IDCARD)))

        assert exc_info.value.messages == ["API error: No face detected"]
        assert len(client.requests_to(f"{config.tasks_url}/task-1")) == 2

    def test_polled_task_without_urls(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, {"output": {"task_id": "task-1"}})
        client.add_json("GET", f"{config.tasks_url}/task-1", {"output": {"task_status": "SUCCEEDED"}})

        with pytest.raises(GenerationAggregateError, match="no image URL returned"):
            asyncio.run(
                make_dispatcher(client, config).generate("res-1", create_test_templates(IDCARD))
            )

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"output": {"task_status": "SUCCEEDED"}}, "Unexpected generation response format"),
            ({"request_id": "r"}, "Unable to parse generation response"),
        ],
    )
    def test_unusable_responses(self, payload, message):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, payload)

        with pytest.raises(GenerationAggregateError, match=message):
            asyncio.run(
                make_dispatcher(client, config).generate("res-1", create_test_templates(IDCARD))
            )

    def test_no_templates_yields_no_images_error(self):
        config = create_test_config()

        with pytest.raises(APIError, match="returned no images"):
            asyncio.run(make_dispatcher(FakeHTTPClient(), config).generate("res-1", []))


class TestDispatchAndAggregate:
    """Tests for the lower-level dispatch and aggregate steps."""

    def test_dispatch_returns_terminal_tasks(self):
        config = create_test_config()
        client = FakeHTTPClient()
        client.add_json("POST", config.generation_url, results("a"), match=style_matcher(IDCARD))

        tasks = asyncio.run(
            make_dispatcher(client, config).dispatch("res-1", create_test_templates())
        )

        assert [task.index for task in tasks] == [0, 1]
        assert tasks[0].state == TaskState.SUCCEEDED
        assert tasks[1].state == TaskState.FAILED
        assert "status 404" in str(tasks[1].error)

    def test_aggregate_all_empty(self):
        config = create_test_config()
        tasks = []
        for index, template in enumerate(create_test_templates()):
            task = GenerationTask(index=index, template=template)
            task.mark_succeeded([])
            tasks.append(task)

        with pytest.raises(APIError, match="returned no images"):
            make_dispatcher(FakeHTTPClient(), config).aggregate(tasks)
