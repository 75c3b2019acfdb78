"""
Composition root: builds the bridge, the services and the orchestrator
from a ChatConfig and wires them together.
"""

from pathlib import Path
from typing import Optional

from gp_chat.config import ChatConfig
from gp_chat.frontend import FrontendBridge
from gp_chat.orchestrator import ConversationOrchestrator
from gp_chat.models.message import Button
from gp_chat.models.results import PredefinedMessage
from gp_chat.services.content import HttpInstructionProvider, HttpPredefinedMessageProvider
from gp_chat.services.embeddings import HttpEmbedder
from gp_chat.services.generation import OpenAIGenerationService
from gp_chat.services.mock import (
    MockGenerationService,
    MockPredefinedMessageProvider,
    MockRAGService,
    MockRouterService,
    MockSessionProvider,
)
from gp_chat.services.rag import IndexRAGService
from gp_chat.services.router import HttpRouterService
from gp_chat.services.session import (
    HttpSessionProvider,
    InMemoryHistoryStore,
    JsonHistoryStore,
    StaticModuleContext,
)
from gp_chat.transport.bridge import BridgeTransport
from gp_chat.transport.http import HttpClient

MOCK_REPLY = "Thanks for your message! This is a mock reply."
MOCK_GREETING = "Welcome! Ready to start?"
MOCK_PREDEFINED = {
    "day_one": PredefinedMessage(
        identifier="day_one",
        text=MOCK_GREETING,
        buttons=[
            Button(identifier="start_tour", label="Show me around"),
            Button(identifier="skip_tour", label="Just chat"),
        ],
    ),
    "start_tour": PredefinedMessage(
        identifier="start_tour",
        text="Ask me anything about your modules, or just tell me about your day.",
    ),
}


class ChatApp:
    def __init__(self, bridge: BridgeTransport, frontend: FrontendBridge,
                 orchestrator: ConversationOrchestrator, clients: Optional[list[HttpClient]] = None):
        self.bridge = bridge
        self.frontend = frontend
        self.orchestrator = orchestrator
        self._clients = clients or []

    async def close(self) -> None:
        for client in self._clients:
            await client.close()


def build_app(config: ChatConfig, mock: Optional[bool] = None) -> ChatApp:
    mock = config.mock if mock is None else mock
    bridge = BridgeTransport()
    clients: list[HttpClient] = []

    predefined = None
    instruction_source = None
    if mock:
        router = MockRouterService(agent="default")
        rag = MockRAGService()
        generation = MockGenerationService.streaming(MOCK_REPLY)
        session = MockSessionProvider()
        history_store = InMemoryHistoryStore()
        predefined = MockPredefinedMessageProvider(MOCK_PREDEFINED)
    else:
        backend = HttpClient(config.base_url, timeout=config.request_timeout_s)
        router_http = HttpClient(config.router_url, timeout=config.request_timeout_s)
        openai_http = HttpClient(config.openai_endpoint, token=config.openai_api_key,
                                 timeout=config.request_timeout_s)
        embeddings_http = HttpClient(config.embeddings_endpoint, token=config.openai_api_key,
                                     timeout=config.request_timeout_s)
        clients = [backend, router_http, openai_http, embeddings_http]
        router = HttpRouterService(router_http)
        rag = IndexRAGService.from_corpora(config.rag_corpora,
                                           HttpEmbedder(embeddings_http, model=config.embedding_model))
        generation = OpenAIGenerationService(openai_http, model=config.openai_model,
                                             history_window=config.history_window)
        session = HttpSessionProvider(backend, config.login_path, config.login_credentials)
        history_store = JsonHistoryStore(Path(config.history_file))
        if config.predefined_path:
            predefined = HttpPredefinedMessageProvider(backend, config.predefined_path)
        if config.instructions_path:
            instruction_source = HttpInstructionProvider(backend, config.instructions_path)

    orchestrator = ConversationOrchestrator(
        bridge,
        router,
        rag,
        generation,
        session,
        history_store=history_store,
        module_context=StaticModuleContext(config.module_context),
        instructions=config.instructions,
        retry_delay=config.retry_delay_s,
        history_window=config.history_window,
        predefined=predefined,
        instruction_source=instruction_source,
    )
    orchestrator.attach()
    return ChatApp(bridge, FrontendBridge(bridge), orchestrator, clients)
