from gp_chat.services.base import (
    Embedder,
    GenerationService,
    HistoryStore,
    InstructionProvider,
    ModuleContextProvider,
    OnChunk,
    PredefinedMessageProvider,
    RAGService,
    RouterService,
    SessionProvider,
)

__all__ = [
    "Embedder",
    "GenerationService",
    "HistoryStore",
    "InstructionProvider",
    "ModuleContextProvider",
    "OnChunk",
    "PredefinedMessageProvider",
    "RAGService",
    "RouterService",
    "SessionProvider",
]
