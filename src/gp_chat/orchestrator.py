"""
Conversation orchestrator.

Drives one conversation through its stages:

    Bootstrapping -> Idle -> Routing -> RetrievingContext -> Generating
                          -> UpdatingProfile -> Idle

Scripted turns skip routing and generation: the next predefined message
is fetched by identifier (RetrievingContext) and shown as the reply.
When a scripted message has no successor the conversation falls back to
the AI pipeline.

Only one turn is active at a time. Starting a new turn, or forcing a new
conversation, cancels the running one; every turn carries a sequence
number and anything a superseded turn produces afterwards is discarded.
The orchestrator only reaches the frontend through the bridge.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from gp_chat.errors import GpChatError, InputValidationError, ServiceError, SessionError
from gp_chat.models.events import ActionType, BridgeEventType
from gp_chat.models.message import ChatMessage, Role, UserActivity, event_timestamp, serialize_history
from gp_chat.models.results import LoginResult
from gp_chat.services.base import (
    GenerationService,
    HistoryStore,
    InstructionProvider,
    ModuleContextProvider,
    PredefinedMessageProvider,
    RAGService,
    RouterService,
    SessionProvider,
)
from gp_chat.transport.bridge import BridgeTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_DELAY_S = 4.0
DEFAULT_HISTORY_WINDOW = 10

PROFILE_INSTRUCTION_KEY = "profile_generator"
AGENT_NAME_INSTRUCTION_KEY = "agent_namer"
DEFAULT_PROFILE_INSTRUCTION = (
    "Update the user profile with anything new learned from the conversation. "
    "Reply with the full profile only."
)

FIRST_DAY_IDENTIFIER = "day_one"
DAY_PREFIX = "day_"
_DAY_NAMES = ("one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten")


class Stage(str, Enum):
    BOOTSTRAPPING = "bootstrapping"
    IDLE = "idle"
    ROUTING = "routing"
    RETRIEVING_CONTEXT = "retrieving_context"
    GENERATING = "generating"
    UPDATING_PROFILE = "updating_profile"


class ConversationState(BaseModel):
    history: list[ChatMessage] = []
    profile: str = ""
    stage: Stage = Stage.BOOTSTRAPPING
    session_ready: bool = False
    session_token: Optional[str] = None
    module_context: Optional[str] = None
    agent_name: str = ""


def fallback_instruction(agent: str) -> str:
    return f"You are {agent}. Respond helpfully to the user's message."


def day_name(day: int) -> str:
    return _DAY_NAMES[day - 1] if 1 <= day <= len(_DAY_NAMES) else str(day)


def next_day_identifier(history: list[ChatMessage]) -> str:
    """Identifier of the opening message for the day after the last one shown."""
    days = sum(1 for m in history if m.predefined_id and m.predefined_id.startswith(DAY_PREFIX))
    return f"{DAY_PREFIX}{day_name(days + 1)}"


class ConversationOrchestrator:
    def __init__(
        self,
        bridge: BridgeTransport,
        router: RouterService,
        rag: RAGService,
        generation: GenerationService,
        session: SessionProvider,
        history_store: Optional[HistoryStore] = None,
        module_context: Optional[ModuleContextProvider] = None,
        instructions: Optional[Mapping[str, str]] = None,
        retry_delay: float = DEFAULT_RETRY_DELAY_S,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        on_activity: Optional[Callable[[UserActivity], None]] = None,
        predefined: Optional[PredefinedMessageProvider] = None,
        instruction_source: Optional[InstructionProvider] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._bridge = bridge
        self._router = router
        self._rag = rag
        self._generation = generation
        self._session = session
        self._history_store = history_store
        self._module_context = module_context
        self._instructions = dict(instructions or {})
        self._retry_delay = retry_delay
        self._history_window = history_window
        self._on_activity = on_activity
        self._predefined = predefined
        self._instruction_source = instruction_source
        self._clock = clock

        self.state = ConversationState()
        self._turn_id = 0
        self._turn_task: Optional[asyncio.Task[None]] = None
        self._bootstrap_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()
        self._ready = asyncio.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    @property
    def turn_task(self) -> Optional[asyncio.Task[None]]:
        return self._turn_task

    # Bootstrap

    def start(self, expect_new_message: bool = False) -> asyncio.Task[None]:
        """Schedule bootstrap in the background. Idempotent."""
        if self._bootstrap_task is None:
            self._bootstrap_task = asyncio.get_running_loop().create_task(self._bootstrap(expect_new_message))
        return self._bootstrap_task

    async def bootstrap(self, expect_new_message: bool = False) -> None:
        """Run bootstrap, or wait for the one already running."""
        await self.start(expect_new_message)

    async def _bootstrap(self, expect_new_message: bool) -> None:
        """Acquire a session, retrying every retry_delay seconds until it works, then announce the chat."""
        self.state.stage = Stage.BOOTSTRAPPING
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._session.login()
            except Exception as e:
                result = LoginResult(success=False, error=str(e))
            if result.success:
                break
            logger.warning(
                "Login attempt %d failed: %s. Retrying in %.1fs", attempt, result.error, self._retry_delay,
            )
            await asyncio.sleep(self._retry_delay)

        self.state.session_token = result.token
        self.state.history = await self._load_history()
        self.state.module_context = await self._load_module_context()
        await self._load_instructions()
        opening = self._opening_identifier()
        self.state.session_ready = True
        self.state.stage = Stage.IDLE
        logger.info("Chat initialized after %d login attempt(s), %d messages", attempt, len(self.state.history))
        self._send_initialized(expect_new_message or opening is not None)
        self._ready.set()
        if opening is not None:
            self._start_turn(None, predefined=opening)

    async def _load_history(self) -> list[ChatMessage]:
        if self._history_store is None:
            return []
        try:
            return await self._history_store.load()
        except Exception:
            logger.exception("Failed to load conversation history, starting empty")
            return []

    async def _load_module_context(self) -> Optional[str]:
        if self._module_context is None:
            return None
        try:
            return await self._module_context.latest_context()
        except Exception:
            logger.exception("Failed to read module context")
            return None

    async def _load_instructions(self) -> None:
        """Backend instructions fill in any key not configured locally."""
        if self._instruction_source is None:
            return
        try:
            loaded = await self._instruction_source.load()
        except Exception:
            logger.exception("Failed to load instructions, using configured ones")
            return
        self._instructions = {**loaded, **self._instructions}
        logger.info("Loaded %d instructions", len(loaded))

    def _opening_identifier(self) -> Optional[str]:
        """The scripted message that opens today's session, if one is due."""
        if self._predefined is None:
            return None
        history = self.state.history
        if not history:
            return FIRST_DAY_IDENTIFIER
        if history[-1].timestamp.date() < self._clock().date():
            return next_day_identifier(history)
        return None

    def _send_initialized(self, expect_new_message: bool) -> None:
        self._bridge.send(BridgeEventType.CHAT_INITIALIZED, {
            "conversationHistory": [m.to_wire() for m in self.state.history],
            "expectNewMessage": expect_new_message,
            "timestamp": event_timestamp(),
        })

    # Inputs

    def submit_user_message(self, text: str) -> asyncio.Task[None]:
        if not text or not text.strip():
            raise InputValidationError("Message cannot be empty")
        self._require_session()
        return self._start_turn(ChatMessage(role=Role.USER, text=text.strip()))

    def submit_button_click(self, button_id: str) -> asyncio.Task[None]:
        self._require_session()
        last_bot = next((m for m in reversed(self.state.history) if m.role == Role.BOT), None)
        button = None
        if last_bot is not None and button_id:
            button = next((b for b in last_bot.buttons if b.identifier == button_id), None)
        if button is None:
            raise InputValidationError(f"Unknown button: {button_id}", details={"buttonId": button_id})
        message = ChatMessage(role=Role.USER, text=button.label, button_name=button.identifier)
        if self._predefined is not None and last_bot.predefined_id:
            return self._start_turn(message, predefined=button.identifier)
        return self._start_turn(message)

    def submit_user_activity(self, activity: Union[str, Mapping[str, Any]]) -> UserActivity:
        if isinstance(activity, str):
            try:
                activity = json.loads(activity)
            except json.JSONDecodeError as e:
                raise InputValidationError(f"Malformed activity data: {e}")
        if not isinstance(activity, Mapping):
            raise InputValidationError("Activity data must be an object")
        if not str(activity.get("type") or "").strip() or not str(activity.get("name") or "").strip():
            raise InputValidationError("Activity data must have type and name properties")
        try:
            parsed = UserActivity.model_validate(dict(activity))
        except ValidationError as e:
            raise InputValidationError(f"Malformed activity data: {e}")
        logger.info("User activity %s: %s", parsed.type, parsed.name)
        if self._on_activity is not None:
            self._on_activity(parsed)
        return parsed

    def force_new_conversation(self) -> None:
        self._cancel_turn()
        self.state.history = []
        self.state.profile = ""
        self.state.agent_name = ""
        if self._history_store is not None:
            self._in_background(self._history_store.clear())
        self.state.stage = Stage.IDLE
        logger.info("Started a new conversation")
        if not self.state.session_ready:
            return
        self._send_initialized(self._predefined is not None)
        if self._predefined is not None:
            self._start_turn(None, predefined=FIRST_DAY_IDENTIFIER)

    def request_conversation_history(self) -> list[dict[str, Any]]:
        history = [m.to_wire() for m in self.state.history]
        self._bridge.send(BridgeEventType.CONVERSATION_HISTORY, {"history": history})
        return history

    # Bridge wiring

    def attach(self) -> Callable[[], None]:
        """Register action handlers on the bridge. Returns a function that removes them."""
        removers = [
            self._bridge.on(ActionType.SEND_MESSAGE, self._on_send_message),
            self._bridge.on(ActionType.CLICK_BUTTON, self._on_click_button),
            self._bridge.on(ActionType.USER_ACTIVITY, self._on_user_activity),
            self._bridge.on(ActionType.FORCE_NEW_CONVERSATION, self._on_force_new_conversation),
            self._bridge.on(ActionType.GET_CONVERSATION_HISTORY, self._on_get_conversation_history),
        ]

        def detach() -> None:
            for remove in removers:
                remove()
        return detach

    def _on_send_message(self, data: dict[str, Any], _raw: dict[str, Any]) -> None:
        self._report(lambda: self.submit_user_message(str(data.get("message") or "")))

    def _on_click_button(self, data: dict[str, Any], _raw: dict[str, Any]) -> None:
        self._report(lambda: self.submit_button_click(str(data.get("buttonId") or "")))

    def _on_user_activity(self, data: dict[str, Any], _raw: dict[str, Any]) -> None:
        self._report(lambda: self.submit_user_activity(data.get("activityData") or ""))

    def _on_force_new_conversation(self, _data: dict[str, Any], _raw: dict[str, Any]) -> None:
        self.force_new_conversation()

    def _on_get_conversation_history(self, _data: dict[str, Any], _raw: dict[str, Any]) -> None:
        self.request_conversation_history()

    def _report(self, action: Callable[[], Any]) -> None:
        try:
            action()
        except GpChatError as e:
            logger.warning("Rejected bridge action: %s", e)
            self._bridge.send_error(str(e))

    # Turn pipeline

    def _require_session(self) -> None:
        if not self.state.session_ready:
            raise SessionError("Chat session is not ready yet")

    def _start_turn(self, message: Optional[ChatMessage], predefined: Optional[str] = None) -> asyncio.Task[None]:
        """Begin a turn answering ``message``; with ``predefined`` the reply is that scripted message."""
        self._cancel_turn()
        turn_id = self._turn_id
        if message is not None:
            self._append(message)
            self._bridge.send(BridgeEventType.MESSAGE_RECEIVED, message.to_wire())
        if predefined is not None:
            self.state.stage = Stage.RETRIEVING_CONTEXT
            work = partial(self._predefined_turn, turn_id, predefined, message)
        else:
            assert message is not None
            self.state.stage = Stage.ROUTING
            work = partial(self._turn, turn_id, message)
        self._turn_task = asyncio.get_running_loop().create_task(self._run_turn(turn_id, work))
        return self._turn_task

    def _cancel_turn(self) -> None:
        self._turn_id += 1
        task, self._turn_task = self._turn_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Cancelled in-flight turn")

    def _is_current(self, turn_id: int) -> bool:
        return turn_id == self._turn_id

    def _advance(self, turn_id: int, stage: Stage) -> bool:
        if not self._is_current(turn_id):
            return False
        self.state.stage = stage
        return True

    async def _run_turn(self, turn_id: int, work: Callable[[], Awaitable[None]]) -> None:
        try:
            await work()
        except ServiceError as e:
            self._fail_turn(turn_id, f"{e.service}: {e}")
        except Exception as e:
            logger.exception("Turn failed unexpectedly")
            self._fail_turn(turn_id, f"Unexpected error: {e}")

    async def _turn(self, turn_id: int, message: ChatMessage) -> None:
        history = list(self.state.history)
        routed = await self._call("router", self._router.route(
            message.text, serialize_history(history, self._history_window),
        ))
        if not routed.agent:
            raise ServiceError("router", "Router returned no agent")
        logger.debug("Turn %d routed to %s", turn_id, routed.agent)

        if not self._advance(turn_id, Stage.RETRIEVING_CONTEXT):
            return
        context = await self._call("rag", self._rag.retrieve(
            routed.agent, routed.examples, routed.knowledge, history,
        ))

        if not self._advance(turn_id, Stage.GENERATING):
            return
        streamed = 0

        def on_chunk(text: str) -> None:
            nonlocal streamed
            if not self._is_current(turn_id) or len(text) < streamed:
                return
            streamed = len(text)
            self._bridge.send(BridgeEventType.STREAM_CHUNK, {
                "chunk": text, "timestamp": event_timestamp(), "isStreaming": True,
            })

        result = await self._call("generation", self._generation.generate(
            self._instructions.get(routed.agent) or fallback_instruction(routed.agent),
            context.examples,
            context.knowledge,
            self._profile_context(),
            history,
            on_chunk,
        ))
        if not self._is_current(turn_id):
            return
        if not result.text:
            raise ServiceError("generation", "Generation returned an empty response")

        reply = ChatMessage(role=Role.BOT, text=result.text, buttons=tuple(result.buttons))
        self._append(reply)
        self._bridge.send(BridgeEventType.MESSAGE_RECEIVED, reply.to_wire())
        await self._update_profile(turn_id)

    async def _predefined_turn(self, turn_id: int, identifier: str, trigger: Optional[ChatMessage]) -> None:
        assert self._predefined is not None
        fetched = await self._call("predefined", self._predefined.fetch(identifier))
        if not self._is_current(turn_id):
            return
        if fetched is None:
            if trigger is not None:
                logger.info("No predefined message %r, continuing with the assistant", identifier)
                self.state.stage = Stage.ROUTING
                await self._turn(turn_id, trigger)
            else:
                logger.info("No predefined message %r, resuming conversation", identifier)
                self.state.stage = Stage.IDLE
            return

        reply = ChatMessage(
            role=Role.BOT,
            text=fetched.text,
            buttons=tuple(fetched.buttons),
            timestamp=self._clock(),
            predefined_id=fetched.identifier,
        )
        self._append(reply)
        self._bridge.send(BridgeEventType.MESSAGE_RECEIVED, reply.to_wire())
        await self._update_profile(turn_id)

    async def _update_profile(self, turn_id: int) -> None:
        self.state.stage = Stage.UPDATING_PROFILE
        profile = await self._call("profile", self._generation.update_profile(
            self.state.profile,
            list(self.state.history),
            self._instructions.get(PROFILE_INSTRUCTION_KEY) or DEFAULT_PROFILE_INSTRUCTION,
        ))
        if not self._is_current(turn_id):
            return
        self.state.profile = profile
        await self._refresh_agent_name(turn_id)
        self._advance(turn_id, Stage.IDLE)

    async def _call(self, service: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ServiceError:
            raise
        except Exception as e:
            raise ServiceError(service, str(e)) from e

    async def _refresh_agent_name(self, turn_id: int) -> None:
        instruction = self._instructions.get(AGENT_NAME_INSTRUCTION_KEY)
        if not instruction:
            return
        try:
            name = await self._generation.name_agent(list(self.state.history), instruction)
        except Exception as e:
            logger.warning("Could not name agent: %s", e)
            return
        if self._is_current(turn_id):
            self.state.agent_name = name

    def _fail_turn(self, turn_id: int, error: str) -> None:
        if not self._is_current(turn_id):
            logger.debug("Ignoring failure of superseded turn %d: %s", turn_id, error)
            return
        logger.error("Turn failed: %s", error)
        self.state.stage = Stage.IDLE
        self._bridge.send_error(error)

    def _profile_context(self) -> str:
        parts = [self.state.profile]
        if self.state.module_context:
            parts.append(f"Latest module: {self.state.module_context}")
        return "\n\n".join(p for p in parts if p)

    # Persistence

    def _append(self, message: ChatMessage) -> None:
        self.state.history.append(message)
        if self._history_store is not None:
            self._in_background(self._history_store.append(message))

    def _in_background(self, coro: Awaitable[None]) -> None:
        async def _run() -> None:
            try:
                await coro
            except Exception:
                logger.exception("History store update failed")

        task = asyncio.get_running_loop().create_task(_run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_persisted(self) -> None:
        """Wait for queued history-store writes to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))
