"""Analysis orchestrator: memory-aware screenshot coaching."""

import base64
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from config.settings import Settings

# LLM components
from llm.factory import create_llm_client_from_settings
from llm.base_client import BaseLLMClient, ImageInput

# Memory components
from memory.kv_store import KVStore, SQLiteKVStore
from memory.conversation_store import ConversationStore
from memory.identity import resolve_device_id, resolve_conversation_id
from memory.policy import compute_screenshot_hash, is_screenshot_duplicate

# ReAct components
from react.guard import NotificationRateGuard
from react.tools import SendPushNotificationTool
from react.loop import ReActLoop

# Prompting and patterns
from agents.prompt_builder import MemoryPromptBuilder, SYSTEM_PROMPT, USER_PROMPT
from agents.pattern_tracker import PatternTracker

# Push delivery
from push.token_store import PushTokenStore
from push.expo_client import ExpoPushClient

from schemas.memory import ConversationMemory, ConversationMessage
from schemas.responses import (
    AnalysisRequest,
    AnalysisResponse,
    DeliveryResult,
    NotificationSummary,
    PushTokenData,
)
from utils.clock import now_ms

logger = logging.getLogger(__name__)

DUPLICATE_SCREENSHOT_REASON = "Duplicate screenshot already analyzed in this conversation"


class AnalysisOrchestrator:
    """Ties identity, memory, policy, prompting and the guarded model call together."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[BaseLLMClient] = None,
        kv: Optional[KVStore] = None,
        token_store: Optional[PushTokenStore] = None,
        push_client: Optional[ExpoPushClient] = None,
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            llm_client: Vision LLM client (created from settings if omitted)
            kv: Storage backend (SQLite at settings.db_path if omitted)
            token_store: Push token store
            push_client: Push delivery client
            clock: Millisecond clock
        """
        self.settings = settings or Settings()
        self.clock = clock

        # Initialize memory
        self.kv = kv or SQLiteKVStore(db_path=self.settings.db_path, clock=clock)
        self.store = ConversationStore(self.kv, clock=clock)
        logger.info(f"Memory initialized: {self.settings.db_path}")

        # Initialize push delivery
        self.token_store = token_store or PushTokenStore(db_path=self.settings.db_path, clock=clock)
        self.push_client = push_client or ExpoPushClient(
            token_store=self.token_store,
            push_url=self.settings.expo_push_url,
            access_token=self.settings.expo_access_token
        )

        # Initialize LLM client
        self.llm_client = llm_client
        if self.llm_client is None:
            self._init_llm_client()

        self.prompt_builder = MemoryPromptBuilder()
        self.pattern_tracker = PatternTracker()

    def _init_llm_client(self):
        """Initialize LLM client based on settings."""
        try:
            self.llm_client = create_llm_client_from_settings(self.settings)
            logger.info(
                f"LLM client initialized: {self.settings.llm_provider} "
                f"({self.llm_client.get_model_name()})"
            )
        except ValueError as e:
            logger.error(f"Failed to initialize LLM client: {e}")
            self.llm_client = None

    def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Analyze one screenshot end-to-end.

        Args:
            request: Screenshot upload with client hints

        Returns:
            AnalysisResponse; skipped=True when the screenshot was already
            analyzed in this conversation

        Raises:
            ValueError: If no image was supplied
            StorageError: If the updated memory cannot be saved
        """
        if not request.image:
            raise ValueError("No frame uploaded")

        timestamp = request.timestamp if request.timestamp is not None else self.clock()

        # Step 1: resolve identities
        if request.device_id and request.device_id.strip():
            device_id = request.device_id.strip()
        else:
            device_id = resolve_device_id(request.headers, self.settings.fallback_device_id)
        conversation_id = resolve_conversation_id(request.conversation_id, device_id, timestamp)

        # Step 2: load memory and short-circuit repeats
        memory = self.store.load(conversation_id, device_id)
        screenshot_hash = compute_screenshot_hash(request.image)

        if is_screenshot_duplicate(memory, screenshot_hash):
            logger.info(f"Skipping duplicate screenshot {screenshot_hash[:12]} in {conversation_id}")
            return AnalysisResponse(
                conversation_id=conversation_id,
                device_id=device_id,
                frame_number=request.frame_number,
                timestamp=timestamp,
                skipped=True,
                reason=DUPLICATE_SCREENSHOT_REASON
            )

        if self.settings.verbose:
            print(f"\n{'='*60}")
            print(f"ANALYZING FRAME {request.frame_number} FOR {conversation_id}")
            print(f"{'='*60}\n")

        # Step 3: run the model with memory context and the guarded tool
        analysis, guard = self._run_model(request, memory)

        # Step 4: persist the analysis and what was actually delivered
        message = ConversationMessage(
            timestamp=timestamp,
            frame_number=request.frame_number,
            ai_analysis=analysis,
            screenshot_hash=screenshot_hash
        )
        delivered = [
            record.model_copy(update={"trigger_reason": analysis})
            for record in guard.delivered
        ]

        def record_analysis(stored: ConversationMemory):
            stored.messages.append(message)
            stored.notifications.extend(delivered)
            stored.patterns = self.pattern_tracker.derive(stored)

        saved = self.store.update(conversation_id, device_id, record_analysis)

        if self.settings.verbose:
            print(f"  Delivered notifications: {[r.type for r in delivered]}")
            print(f"  User state: {saved.patterns.current_state}")

        tool_calls = [NotificationSummary(tool=SendPushNotificationTool.name) for _ in delivered]
        return AnalysisResponse(
            conversation_id=conversation_id,
            device_id=device_id,
            frame_number=request.frame_number,
            timestamp=timestamp,
            description=analysis,
            tool_calls=tool_calls or None
        )

    def _run_model(self, request: AnalysisRequest, memory: ConversationMemory):
        """Invoke the model for one request with a fresh rate guard."""
        if not self.llm_client:
            raise RuntimeError(
                f"No LLM client available for {self.settings.llm_provider}. Check API key."
            )

        system_prompt = self.prompt_builder.render(SYSTEM_PROMPT, memory, now=self.clock())

        guard = NotificationRateGuard(
            memory=memory,
            deliver=self.push_client.send_to_all,
            clock=self.clock
        )
        loop = ReActLoop(
            llm_client=self.llm_client,
            tools=[SendPushNotificationTool(guard)],
            max_iterations=self.settings.max_tool_steps
        )

        image = ImageInput(
            data=base64.b64encode(request.image).decode("ascii"),
            media_type=request.media_type
        )
        result = loop.run(
            system_prompt=system_prompt,
            user_prompt=USER_PROMPT,
            images=[image]
        )

        logger.info(f"AI analysis for {memory.conversation_id}: {result.final_answer[:200]}")
        blocked = [step for step in result.steps if step.blocked]
        if blocked:
            logger.info(f"{len(blocked)} notification attempt(s) blocked by rate guard")

        return result.final_answer, guard

    def send_notification(
        self,
        to: Union[str, List[str]],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> DeliveryResult:
        """Send a notification directly, bypassing the coach and its guard."""
        return self.push_client.send(to, title, body, data)

    def register_push_token(self, token_data: PushTokenData) -> int:
        """Store a device push token. Returns the number of registered tokens."""
        self.token_store.upsert(token_data)
        return self.token_store.count()

    def list_push_tokens(self) -> List[PushTokenData]:
        """All registered push tokens."""
        return self.token_store.list_tokens()

    def get_device_notifications(self, device_id: str) -> List[Dict[str, Any]]:
        """Notification history of a device across its conversations."""
        return self.store.get_device_notifications(device_id)

    def list_conversations(self, limit: Optional[int] = None) -> List[ConversationMemory]:
        """Stored conversations, most recently updated first (debug)."""
        return self.store.list_conversations(limit=limit)
