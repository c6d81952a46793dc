"""
Tests for services.dispatcher and services.factory modules.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import FakeElement, FakePage

from multi_ai.exceptions import (
    BrowserInitializationError,
    ConfigValidationError,
    ServiceTimeoutError,
    UnknownServiceError,
)
from multi_ai.models import CookieRecord, PromptResult, ResponseStatus
from multi_ai.services.agent import AgentTimings, ServiceAgent
from multi_ai.services.cancel import CancelToken
from multi_ai.services.descriptors import ServiceDescriptor
from multi_ai.services.dispatcher import Dispatcher, dispatch
from multi_ai.services.factory import AgentFactory, build_agents

FAST = AgentTimings(
    navigation_timeout_ms=200,
    ready_timeout_ms=50,
    login_timeout_s=0.2,
    login_poll_interval_s=0.01,
    loading_appear_timeout_ms=10,
    health_check_timeout_ms=20,
)


def descriptor(name):
    return ServiceDescriptor(
        service_name=name,
        base_url=f"https://{name}.test/",
        input_selector="#input",
        submit_selector="#send",
        response_selector=".reply",
    )


DESCRIPTORS = {name: descriptor(name) for name in ("alpha", "beta", "gamma")}


def make_page(reply):
    return FakePage(
        {
            "#input": [FakeElement()],
            "#send": [FakeElement()],
            ".reply": [FakeElement(reply)],
        }
    )


def make_manager(pages):
    """Manager mock serving pages by context id; exceptions are raised."""

    async def create_or_get_page(context_id, page_id, cookies=None):
        page = pages[context_id]
        if isinstance(page, Exception):
            raise page
        return page

    manager = MagicMock()
    manager.create_or_get_page = AsyncMock(side_effect=create_or_get_page)
    return manager


def make_agents(manager, names=("alpha", "beta", "gamma")):
    cookies = {name: [CookieRecord(name="s", value="v", domain=f"{name}.test")] for name in names}
    return build_agents(
        manager, names, cookies, descriptors=DESCRIPTORS, timings=FAST
    )


class TestDispatcherRun:
    """Tests for Dispatcher.run()."""

    @pytest.mark.asyncio
    async def test_one_failing_init_does_not_affect_siblings(self):
        manager = make_manager(
            {
                "alpha-context": make_page("A"),
                "beta-context": BrowserInitializationError("Failed to launch browser"),
                "gamma-context": make_page("C"),
            }
        )
        agents = make_agents(manager)

        results = await Dispatcher().run("hello", agents, 5_000)

        assert len(results) == 3
        assert [r.service_name for r in results] == ["alpha", "beta", "gamma"]
        assert results[0].status == ResponseStatus.SUCCESS
        assert results[0].content == "A"
        assert results[1].status == ResponseStatus.ERROR
        assert "Failed to launch browser" in results[1].error
        assert results[2].content == "C"

    @pytest.mark.asyncio
    async def test_synchronous_initialize_error_is_contained(self):
        manager = make_manager(
            {name: make_page(name) for name in ("alpha-context", "gamma-context")}
        )
        agents = make_agents(manager)
        agents[1].initialize = MagicMock(side_effect=RuntimeError("sync boom"))

        results = await Dispatcher().run("hello", agents, 5_000)

        assert [r.status for r in results] == [
            ResponseStatus.SUCCESS,
            ResponseStatus.ERROR,
            ResponseStatus.SUCCESS,
        ]
        assert results[1].error == "sync boom"

    @pytest.mark.asyncio
    async def test_empty_agent_list(self):
        assert await Dispatcher().run("hello", [], 5_000) == []

    @pytest.mark.asyncio
    async def test_cleanup_always_runs(self):
        manager = make_manager(
            {
                "alpha-context": make_page("A"),
                "beta-context": RuntimeError("boom"),
                "gamma-context": make_page("C"),
            }
        )
        agents = make_agents(manager)

        await Dispatcher().run("hello", agents, 5_000)

        assert all(agent.page is None for agent in agents)

    @pytest.mark.asyncio
    async def test_init_timeout_reported_as_timeout(self):
        manager = make_manager(
            {
                "alpha-context": ServiceTimeoutError("alpha", 100),
                "beta-context": make_page("B"),
                "gamma-context": make_page("C"),
            }
        )
        agents = make_agents(manager)

        results = await Dispatcher().run("hello", agents, 5_000)

        assert results[0].status == ResponseStatus.TIMEOUT
        assert results[0].content == ""

    @pytest.mark.asyncio
    async def test_unexpected_prompt_exception_is_contained(self):
        manager = make_manager({n: make_page(n) for n in ("alpha-context", "beta-context")})
        agents = make_agents(manager, names=("alpha", "beta"))
        agents[0].send_prompt = AsyncMock(side_effect=RuntimeError("kaboom"))

        results = await Dispatcher().run("hello", agents, 5_000)

        assert results[0].status == ResponseStatus.ERROR
        assert results[0].error == "kaboom"
        assert results[1].ok

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        agents = []
        active = 0
        peak = 0

        async def slow_prompt(prompt, timeout_ms, *, cancel=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return PromptResult.success("x", "ok", 20)

        for _ in range(6):
            agent = MagicMock(spec=ServiceAgent)
            agent.service_name = "x"
            agent.initialize = AsyncMock()
            agent.send_prompt = slow_prompt
            agents.append(agent)

        results = await Dispatcher(max_concurrent=2).run("hello", agents, 5_000)

        assert len(results) == 6
        assert peak == 2

    def test_max_concurrent_must_be_positive(self):
        with pytest.raises(ValueError):
            Dispatcher(max_concurrent=0)

    @pytest.mark.asyncio
    async def test_dispatch_shortcut(self):
        manager = make_manager({"alpha-context": make_page("only")})
        agents = make_agents(manager, names=("alpha",))

        results = await dispatch("hello", agents, 5_000, max_concurrent=1)

        assert [r.content for r in results] == ["only"]


class TestDispatcherStream:
    """Tests for Dispatcher.stream()."""

    @pytest.mark.asyncio
    async def test_yields_in_completion_order(self):
        pages = {
            "alpha-context": make_page("slow"),
            "beta-context": make_page("fast"),
            "gamma-context": RuntimeError("no page"),
        }
        pages["alpha-context"].appear_after[".reply"] = 0.1
        agents = make_agents(make_manager(pages))

        seen = [item async for item in Dispatcher().stream("hello", agents, 5_000)]

        indexes = [index for index, _ in seen]
        assert sorted(indexes) == [0, 1, 2]
        assert indexes[-1] == 0
        by_index = dict(seen)
        assert by_index[0].content == "slow"
        assert by_index[1].content == "fast"
        assert by_index[2].status == ResponseStatus.ERROR

    @pytest.mark.asyncio
    async def test_synchronous_initialize_error_in_stream(self):
        manager = make_manager({"alpha-context": make_page("A")})
        agents = make_agents(manager, names=("alpha", "beta"))
        agents[1].initialize = MagicMock(side_effect=RuntimeError("sync boom"))

        stream = Dispatcher().stream("hello", agents, 5_000)
        by_index = dict([item async for item in stream])

        assert by_index[0].content == "A"
        assert by_index[1].error == "sync boom"

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert [item async for item in Dispatcher().stream("hello", [], 5_000)] == []


class TestDispatcherCancel:
    """Tests for batch-wide cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_aborts_all_agents(self):
        pages = {name: make_page("x") for name in ("alpha-context", "beta-context")}
        for page in pages.values():
            del page.elements[".reply"]
        agents = make_agents(make_manager(pages), names=("alpha", "beta"))
        token = CancelToken()

        async def cancel_soon():
            await asyncio.sleep(0.05)
            token.cancel("Stopped by user")

        results, _ = await asyncio.gather(
            Dispatcher().run("hello", agents, 10_000, cancel=token), cancel_soon()
        )

        assert [r.status for r in results] == [ResponseStatus.ERROR] * 2
        assert all("Stopped by user" in r.error for r in results)
        assert all(r.response_time_ms < 10_000 for r in results)


class TestAgentFactory:
    """Tests for AgentFactory and build_agents()."""

    def test_builds_agents_in_order(self):
        manager = MagicMock()
        agents = AgentFactory(manager).build(["ChatGPT", " claude ", "gemini"])

        assert [a.service_name for a in agents] == ["chatgpt", "claude", "gemini"]
        assert [a.context_id for a in agents] == [
            "chatgpt-context",
            "claude-context",
            "gemini-context",
        ]
        assert [a.page_id for a in agents] == [
            "chatgpt-page",
            "claude-page",
            "gemini-page",
        ]

    def test_unknown_service_raises_before_building(self):
        manager = MagicMock()

        with pytest.raises(UnknownServiceError) as exc_info:
            AgentFactory(manager).build(["chatgpt", "bard"])

        assert exc_info.value.service_name == "bard"
        assert "chatgpt" in exc_info.value.available
        manager.create_or_get_page.assert_not_called()

    def test_duplicate_service_rejected(self):
        manager = MagicMock()

        with pytest.raises(ConfigValidationError, match="Duplicate services: chatgpt"):
            AgentFactory(manager).build(["chatgpt", "ChatGPT "])

    def test_cookies_are_assigned_per_service(self):
        cookies = [CookieRecord(name="sid", value="v", domain="claude.ai")]

        agents = build_agents(MagicMock(), ["chatgpt", "claude"], {"claude": cookies})

        assert agents[0].cookies == []
        assert agents[1].cookies == cookies

    def test_custom_descriptors(self):
        agents = build_agents(MagicMock(), ["alpha"], descriptors=DESCRIPTORS)

        assert agents[0].descriptor.base_url == "https://alpha.test/"
        with pytest.raises(UnknownServiceError):
            build_agents(MagicMock(), ["chatgpt"], descriptors=DESCRIPTORS)
