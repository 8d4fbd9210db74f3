"""End-to-end tests for AnalysisOrchestrator."""

from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

from config.settings import Settings
from llm.base_client import BaseLLMClient, LLMResponse, Message, ToolCall
from memory.identity import generate_conversation_id
from memory.kv_store import SQLiteKVStore
from orchestrator import DUPLICATE_SCREENSHOT_REASON, AnalysisOrchestrator
from push.token_store import PushTokenStore
from schemas.responses import AnalysisRequest, DeliveryResult, PushTokenData

START = 1_700_000_000_000
MINUTE = 60 * 1000

PASSIVE_BODY = "stop. 'you pick' is weak. decisiveness is hot. pick a place and time."


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class ScriptedLLMClient(BaseLLMClient):
    """LLM client replaying canned responses and recording its calls."""

    def __init__(self):
        self.responses: List[LLMResponse] = []
        self.calls = []

    def script(self, *responses: LLMResponse):
        self.responses.extend(responses)

    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        self.calls.append(list(messages))
        return self.responses.pop(0)

    def get_provider_name(self) -> str:
        return "scripted"

    def get_model_name(self) -> str:
        return "scripted-1"


def notify(body: str, call_id: str = "call_1") -> LLMResponse:
    return LLMResponse(
        content="",
        tool_calls=[ToolCall(id=call_id, name="sendPushNotification", arguments={"title": "cupid", "body": body})],
    )


class TestAnalysisOrchestrator:
    """Test the analysis pipeline against real storage."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.llm = ScriptedLLMClient()
        self.push_client = Mock()
        self.push_client.send_to_all.return_value = DeliveryResult(
            success=True, sent=1, total=1, tickets=[{"status": "ok", "id": "t1"}]
        )
        db_path = str(tmp_path / "cupid.db")
        self.orchestrator = AnalysisOrchestrator(
            settings=Settings(db_path=db_path),
            llm_client=self.llm,
            kv=SQLiteKVStore(db_path=db_path, clock=self.clock),
            token_store=PushTokenStore(db_path=db_path, clock=self.clock),
            push_client=self.push_client,
            clock=self.clock,
        )

    def request(self, image: bytes, **kwargs) -> AnalysisRequest:
        kwargs.setdefault("device_id", "device-123")
        kwargs.setdefault("timestamp", self.clock())
        return AnalysisRequest(image=image, **kwargs)

    def test_first_screenshot_sends_notification(self):
        """Test a new conversation gets advice and remembers it."""
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="user is being passive"))

        response = self.orchestrator.analyze(self.request(b"screen-1", frame_number=1))

        assert response.success is True
        assert response.skipped is False
        assert response.description == "user is being passive"
        assert response.conversation_id == generate_conversation_id("device-123", START)
        assert [t.tool for t in response.tool_calls] == ["sendPushNotification"]
        self.push_client.send_to_all.assert_called_once_with("cupid", PASSIVE_BODY)

        memory = self.orchestrator.store.load(response.conversation_id, "device-123")
        assert len(memory.messages) == 1
        assert memory.messages[0].frame_number == 1
        assert memory.messages[0].ai_analysis == "user is being passive"
        assert memory.notifications[0].type == "passive-planning"
        assert memory.notifications[0].sent_at == START
        assert memory.notifications[0].trigger_reason == "user is being passive"
        assert memory.patterns.common_mistakes == ["passive-planning"]
        assert memory.patterns.current_state == "stagnant"

    def test_first_prompt_has_no_memory(self):
        """Test a new conversation uses the plain system prompt."""
        self.llm.script(LLMResponse(content="fine"))

        self.orchestrator.analyze(self.request(b"screen-1"))

        system = self.llm.calls[0][0]
        assert system.role == "system"
        assert "=== Conversation Memory ===" not in system.content
        assert self.llm.calls[0][1].images[0].media_type == "image/jpeg"

    def test_duplicate_screenshot_skipped(self):
        """Test the same screenshot is not analyzed twice."""
        self.llm.script(LLMResponse(content="fine"))
        self.orchestrator.analyze(self.request(b"screen-1"))

        self.clock.advance(MINUTE)
        response = self.orchestrator.analyze(self.request(b"screen-1"))

        assert response.skipped is True
        assert response.reason == DUPLICATE_SCREENSHOT_REASON
        assert response.description is None
        assert len(self.llm.calls) == 1
        memory = self.orchestrator.store.load(response.conversation_id, "device-123")
        assert len(memory.messages) == 1
        assert memory.notifications == []
        self.push_client.send_to_all.assert_not_called()

    def test_cooldown_blocks_repeat_advice(self):
        """Test the same advice two minutes later is refused."""
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))
        first = self.orchestrator.analyze(self.request(b"screen-1"))

        self.clock.advance(2 * MINUTE)
        self.llm.script(notify(PASSIVE_BODY, "call_2"), LLMResponse(content="still passive"))
        second = self.orchestrator.analyze(self.request(b"screen-2"))

        assert second.conversation_id == first.conversation_id
        assert second.tool_calls is None
        assert self.push_client.send_to_all.call_count == 1

        tool_message = self.llm.calls[-1][-1]
        assert tool_message.role == "tool"
        assert tool_message.content.startswith('Blocked: Same notification type "passive-planning"')

        memory = self.orchestrator.store.load(second.conversation_id, "device-123")
        assert len(memory.messages) == 2
        assert len(memory.notifications) == 1

    def test_friendzone_alert_cooldown_timeline(self):
        """Test a friendzone alert is refused at 3 minutes and allowed at 6."""
        body = "🚨 friendzone alert 🚨 this chat is so tame. flirt now."
        self.llm.script(notify(body), LLMResponse(content="tame chat"))
        first = self.orchestrator.analyze(self.request(b"screen-1"))
        assert len(first.tool_calls) == 1

        self.clock.advance(3 * MINUTE)
        self.llm.script(notify(body, "call_2"), LLMResponse(content="still tame"))
        blocked = self.orchestrator.analyze(self.request(b"screen-2"))

        assert blocked.tool_calls is None
        assert "sent 3 minutes ago" in self.llm.calls[-1][-1].content

        self.clock.advance(3 * MINUTE)
        self.llm.script(notify(body, "call_3"), LLMResponse(content="tame again"))
        allowed = self.orchestrator.analyze(self.request(b"screen-3"))

        assert len(allowed.tool_calls) == 1
        memory = self.orchestrator.store.load(allowed.conversation_id, "device-123")
        assert [n.type for n in memory.notifications] == ["friendzone-alert", "friendzone-alert"]
        assert [n.sent_at for n in memory.notifications] == [START, START + 6 * MINUTE]

    def test_second_prompt_includes_memory(self):
        """Test later screenshots see the conversation history."""
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))
        self.orchestrator.analyze(self.request(b"screen-1"))

        self.clock.advance(MINUTE)
        self.llm.script(LLMResponse(content="they picked tacos"))
        self.orchestrator.analyze(self.request(b"screen-2"))

        system = self.llm.calls[-1][0].content
        assert "=== Conversation Memory ===" in system
        assert "[passive-planning] 1 min ago" in system
        assert "User state: stagnant" in system

    def test_advice_allowed_after_cooldown(self):
        """Test the same advice is delivered again after six minutes."""
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))
        self.orchestrator.analyze(self.request(b"screen-1"))

        self.clock.advance(6 * MINUTE)
        self.llm.script(notify(PASSIVE_BODY, "call_2"), LLMResponse(content="passive again"))
        response = self.orchestrator.analyze(self.request(b"screen-2"))

        assert len(response.tool_calls) == 1
        memory = self.orchestrator.store.load(response.conversation_id, "device-123")
        assert len(memory.notifications) == 2
        assert memory.patterns.current_state == "regressing"

    def test_one_notification_per_request(self):
        """Test a model asking for two notifications only gets one out."""
        self.llm.script(
            LLMResponse(content="", tool_calls=[
                ToolCall(id="a", name="sendPushNotification", arguments={"title": "1", "body": PASSIVE_BODY}),
                ToolCall(id="b", name="sendPushNotification", arguments={"title": "2", "body": "friendzone alert"}),
            ]),
            LLMResponse(content="done"),
        )

        response = self.orchestrator.analyze(self.request(b"screen-1"))

        assert len(response.tool_calls) == 1
        assert self.push_client.send_to_all.call_count == 1

    def test_failed_delivery_not_remembered(self):
        """Test a notification that reached nobody is not recorded."""
        self.push_client.send_to_all.return_value = DeliveryResult(success=False, sent=0, total=1)
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))

        response = self.orchestrator.analyze(self.request(b"screen-1"))

        assert response.tool_calls is None
        memory = self.orchestrator.store.load(response.conversation_id, "device-123")
        assert memory.notifications == []
        assert len(memory.messages) == 1

    def test_explicit_conversation_id(self):
        """Test a client-supplied conversation id is used."""
        self.llm.script(LLMResponse(content="fine"))

        response = self.orchestrator.analyze(self.request(b"screen-1", conversation_id="chat-42"))

        assert response.conversation_id == "chat-42"

    def test_device_from_headers(self):
        """Test the device id falls back to transport headers."""
        self.llm.script(LLMResponse(content="fine"))

        response = self.orchestrator.analyze(AnalysisRequest(
            image=b"screen-1", timestamp=START, headers={"X-Device-Id": "phone-7"}
        ))

        assert response.device_id == "phone-7"
        assert self.orchestrator.store.list_device_conversation_ids("phone-7") == [response.conversation_id]

    def test_timestamp_defaults_to_clock(self):
        """Test a missing client timestamp uses server time."""
        self.llm.script(LLMResponse(content="fine"))

        response = self.orchestrator.analyze(AnalysisRequest(image=b"screen-1", device_id="device-123"))

        assert response.timestamp == START

    def test_unreadable_memory_starts_over(self):
        """Test a corrupt stored record is treated as a new conversation and replaced."""
        self.orchestrator.kv.put("conversations:chat-9", "not json", ttl_seconds=60)
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))

        response = self.orchestrator.analyze(self.request(b"screen-1", conversation_id="chat-9"))

        assert len(response.tool_calls) == 1
        memory = self.orchestrator.store.load("chat-9", "device-123")
        assert len(memory.messages) == 1
        assert [n.type for n in memory.notifications] == ["passive-planning"]

        self.clock.advance(MINUTE)
        self.llm.script(notify(PASSIVE_BODY, "call_2"), LLMResponse(content="still passive"))
        again = self.orchestrator.analyze(self.request(b"screen-2", conversation_id="chat-9"))

        assert again.tool_calls is None
        assert self.push_client.send_to_all.call_count == 1

    def test_no_image(self):
        """Test a request without an image is rejected."""
        with pytest.raises(ValueError):
            self.orchestrator.analyze(AnalysisRequest(image=b"", device_id="device-123"))
        assert self.llm.calls == []

    def test_model_error_saves_nothing(self):
        """Test a failing model call leaves memory untouched."""
        self.llm.chat = Mock(side_effect=RuntimeError("model unavailable"))

        with pytest.raises(RuntimeError):
            self.orchestrator.analyze(self.request(b"screen-1"))

        conversation_id = generate_conversation_id("device-123", START)
        assert self.orchestrator.store.load(conversation_id, "device-123").version == 0

    def test_device_notifications(self):
        """Test delivered notifications are listed per device."""
        self.llm.script(notify(PASSIVE_BODY), LLMResponse(content="passive"))
        response = self.orchestrator.analyze(self.request(b"screen-1"))

        notifications = self.orchestrator.get_device_notifications("device-123")

        assert len(notifications) == 1
        assert notifications[0]["type"] == "passive-planning"
        assert notifications[0]["conversationId"] == response.conversation_id

    def test_register_push_token(self):
        """Test token registration returns the registry size."""
        assert self.orchestrator.register_push_token(PushTokenData(token="ExponentPushToken[a]")) == 1
        assert self.orchestrator.register_push_token(PushTokenData(token="ExponentPushToken[a]")) == 1
        assert self.orchestrator.register_push_token(PushTokenData(token="ExponentPushToken[b]")) == 2
        assert [t.token for t in self.orchestrator.list_push_tokens()] == [
            "ExponentPushToken[a]", "ExponentPushToken[b]"
        ]
