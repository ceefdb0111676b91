"""Public interface definitions for all external collaborators.

Every external service in the eventScout pipeline is accessed through
the abstract base classes defined in this package.  Concrete adapters
implement them and are wired together in ``src/main.py``; unit tests
inject mocks instead.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ILLMProvider       →  OpenAILLMProvider
    IContentProvider   →  JinaReaderProvider, HttpPageProvider,
                          HeadlessBrowserProvider, RAGraphQLProvider
    IEventStore        →  SQLiteEventStore
    IRunReporter       →  SlackWebhookReporter
"""

from src.interfaces.content_provider import FetchedContent, FetchOptions, IContentProvider
from src.interfaces.event_store import IEventStore, QueueResult, Resolved
from src.interfaces.llm_provider import ILLMProvider, LLMCompletion
from src.interfaces.run_reporter import IRunReporter

__all__ = [
    "FetchOptions",
    "FetchedContent",
    "IContentProvider",
    "IEventStore",
    "ILLMProvider",
    "IRunReporter",
    "LLMCompletion",
    "QueueResult",
    "Resolved",
]
