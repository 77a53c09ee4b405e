"""
Tests for the app-mode processors and their registry.

Covers endpoints, payload shape, user-facing failure messages and
cancellation of a request that is already on the wire.
"""

import asyncio
import threading
from unittest.mock import Mock

import pytest

from ezzi.src.domain.models.app_state import AppMode
from ezzi.src.domain.models.processing import (
    DEBUG_CANCELED_MESSAGE,
    GENERIC_SERVER_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    SOLVE_CANCELED_MESSAGE,
    DebugResponse,
    ProcessingErrorKind,
    SolveResponse,
)
from ezzi.src.domain.services.cancellation import CancelToken
from ezzi.src.infrastructure.ai.api_client import APIResponse, SolvingApiClient
from ezzi.src.infrastructure.processors import (
    LeetCodeProcessor,
    LiveInterviewProcessor,
    ProcessingParams,
    ProcessorRegistry,
    create_default_registry,
)
from ezzi.src.infrastructure.processors.leetcode_processor import MISSING_CONVERSATION_MESSAGE


def _params(token=None, conversation_id=None, headers=None):
    return ProcessingParams(
        images=["aW1nMQ==", "aW1nMg=="],
        language="python",
        locale="en-US",
        is_mock=False,
        signal=token or CancelToken(),
        headers=headers or {"Authorization": "Bearer t"},
        conversation_id=conversation_id,
    )


def _failure(status, kind, error=None):
    return APIResponse(success=False, error=error, error_kind=kind, status_code=status)


class TestLiveInterviewProcessor:
    """Test cases for LiveInterviewProcessor."""

    def setup_method(self):
        self.client = Mock(spec=SolvingApiClient)
        self.processor = LiveInterviewProcessor(self.client)

    @pytest.mark.asyncio
    async def test_solve_posts_payload(self):
        self.client.post.return_value = APIResponse(
            success=True,
            data={"data": {"code": "def f(): pass", "thoughts": ["one", "two"],
                           "time_complexity": "O(n)", "space_complexity": "O(1)"}},
            status_code=200,
        )

        result = await self.processor.solve(_params())

        assert result.success
        assert isinstance(result.data, SolveResponse)
        assert result.data.code == "def f(): pass"
        assert result.data.thoughts == ["one", "two"]
        assert result.data.time_complexity == "O(n)"
        self.client.post.assert_called_once_with(
            "/solutions/solve",
            {"images": ["aW1nMQ==", "aW1nMg=="], "language": "python", "locale": "en-US", "isMock": False},
            {"Authorization": "Bearer t"},
        )

    @pytest.mark.asyncio
    async def test_debug_returns_debug_response(self):
        self.client.post.return_value = APIResponse(success=True, data={"code": "fixed"}, status_code=200)

        result = await self.processor.debug(_params())

        assert result.success
        assert isinstance(result.data, DebugResponse)
        assert self.client.post.call_args[0][0] == "/solutions/debug"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response,kind,message", [
        (_failure(401, ProcessingErrorKind.UNAUTHORIZED, "bad token"),
         ProcessingErrorKind.UNAUTHORIZED, SESSION_EXPIRED_MESSAGE),
        (_failure(403, ProcessingErrorKind.QUOTA_EXHAUSTED, "forbidden"),
         ProcessingErrorKind.QUOTA_EXHAUSTED, SESSION_EXPIRED_MESSAGE),
        (_failure(402, ProcessingErrorKind.QUOTA_EXHAUSTED, "pay"),
         ProcessingErrorKind.QUOTA_EXHAUSTED, LiveInterviewProcessor.quota_message),
        (_failure(500, ProcessingErrorKind.REMOTE_TIMEOUT, "Generation timeout"),
         ProcessingErrorKind.REMOTE_TIMEOUT, "Generation timeout"),
        (_failure(500, ProcessingErrorKind.SERVER_ERROR, "Model overloaded"),
         ProcessingErrorKind.SERVER_ERROR, "Model overloaded"),
        (_failure(500, ProcessingErrorKind.SERVER_ERROR),
         ProcessingErrorKind.SERVER_ERROR, GENERIC_SERVER_ERROR_MESSAGE),
    ])
    async def test_failure_messages(self, response, kind, message):
        self.client.post.return_value = response

        result = await self.processor.solve(_params())

        assert not result.success
        assert result.error_kind is kind
        assert result.error == message

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_server_error(self):
        self.client.post.side_effect = RuntimeError("socket exploded")

        result = await self.processor.solve(_params())

        assert result.error_kind is ProcessingErrorKind.SERVER_ERROR
        assert result.error == "socket exploded"

    @pytest.mark.asyncio
    async def test_already_cancelled_token_skips_request(self):
        token = CancelToken()
        token.cancel()

        result = await self.processor.debug(_params(token))

        assert result.canceled
        assert result.error == DEBUG_CANCELED_MESSAGE
        self.client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_while_request_in_flight(self):
        started = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        def slow_post(*args):
            started.set()
            release.wait(5)
            finished.set()
            return APIResponse(success=True, data={"code": "late"}, status_code=200)

        self.client.post.side_effect = slow_post
        token = CancelToken()
        task = asyncio.ensure_future(self.processor.solve(_params(token)))
        try:
            assert await asyncio.to_thread(started.wait, 5)
            token.cancel()

            result = await asyncio.wait_for(task, timeout=5)
        finally:
            release.set()
        # let the abandoned worker finish before the loop closes
        await asyncio.to_thread(finished.wait, 5)
        await asyncio.sleep(0.01)

        assert result.canceled
        assert result.error == SOLVE_CANCELED_MESSAGE


class TestLeetCodeProcessor:
    """Test cases for LeetCodeProcessor."""

    def setup_method(self):
        self.client = Mock(spec=SolvingApiClient)
        self.processor = LeetCodeProcessor(self.client)

    @pytest.mark.asyncio
    async def test_solve_returns_conversation_id(self):
        self.client.post.return_value = APIResponse(
            success=True, data={"code": "x", "conversationId": "conv-1"}, status_code=200
        )

        result = await self.processor.solve(_params())

        assert result.data.conversation_id == "conv-1"
        assert self.client.post.call_args[0][0] == "/leetcode/solve"
        assert "conversationId" not in self.client.post.call_args[0][1]

    @pytest.mark.asyncio
    async def test_debug_requires_conversation_id(self):
        result = await self.processor.debug(_params())

        assert not result.success
        assert result.error == MISSING_CONVERSATION_MESSAGE
        assert result.error_kind is ProcessingErrorKind.SERVER_ERROR
        self.client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_debug_sends_conversation_id(self):
        self.client.post.return_value = APIResponse(success=True, data={"code": "y"}, status_code=200)

        result = await self.processor.debug(_params(conversation_id="conv-9"))

        assert result.success
        endpoint, payload, _headers = self.client.post.call_args[0]
        assert endpoint == "/leetcode/debug"
        assert payload["conversationId"] == "conv-9"

    @pytest.mark.asyncio
    async def test_quota_message(self):
        self.client.post.return_value = _failure(402, ProcessingErrorKind.QUOTA_EXHAUSTED)

        result = await self.processor.solve(_params())

        assert result.error == LeetCodeProcessor.quota_message


class TestProcessorRegistry:
    """Test cases for ProcessorRegistry."""

    def setup_method(self):
        self.client = Mock(spec=SolvingApiClient)
        self.registry = create_default_registry(self.client)

    def test_default_registry(self):
        assert self.registry.modes == (AppMode.LIVE_INTERVIEW, AppMode.LEETCODE_SOLVER)
        assert self.registry.default_mode is AppMode.LIVE_INTERVIEW
        assert isinstance(self.registry.get(AppMode.LEETCODE_SOLVER), LeetCodeProcessor)

    def test_unknown_mode_falls_back_to_first(self):
        assert isinstance(self.registry.get("system_design"), LiveInterviewProcessor)
        assert isinstance(self.registry.get(None), LiveInterviewProcessor)

    def test_with_processor_returns_new_registry(self):
        only_live = ProcessorRegistry([(AppMode.LIVE_INTERVIEW, LiveInterviewProcessor(self.client))])
        extended = only_live.with_processor(AppMode.LEETCODE_SOLVER, LeetCodeProcessor(self.client))

        assert AppMode.LEETCODE_SOLVER not in only_live
        assert AppMode.LEETCODE_SOLVER in extended
        assert isinstance(only_live.get(AppMode.LEETCODE_SOLVER), LiveInterviewProcessor)

    def test_empty_registry_rejected(self):
        with pytest.raises(ValueError):
            ProcessorRegistry([])
