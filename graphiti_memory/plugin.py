"""Plugin entry point: wires settings, clients, session store and hook handlers."""

from __future__ import annotations

from dataclasses import dataclass

from .client.graphiti import GraphitiClient, GraphMemoryClient
from .client.host import ContextLimitResolver, HostClient
from .compaction.builder import CompactionContextBuilder
from .compaction.preemptive import PreemptiveCompactor
from .core.config import Settings, get_settings
from .hooks.chat import ChatHandler
from .hooks.compacting import CompactingHandler
from .hooks.events import EventHandler
from .hooks.messages import MessagesTransformHandler
from .hooks.system import SystemTransformHandler
from .retrieval.drift import DriftDetector
from .retrieval.pipeline import MemoryInjectionPipeline, MemoryRetriever
from .session.manager import SessionManager
from .utils.groups import make_group_id, make_user_group_id
from .utils.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MemoryPlugin:
    """All hook handlers of one plugin instance, sharing one session store."""

    settings: Settings
    graph: GraphMemoryClient
    sessions: SessionManager
    chat: ChatHandler
    event: EventHandler
    compacting: CompactingHandler
    messages_transform: MessagesTransformHandler
    system_transform: SystemTransformHandler

    @classmethod
    def build(
        cls,
        host: HostClient,
        graph: GraphMemoryClient,
        directory: str | None = None,
        settings: Settings | None = None,
    ) -> MemoryPlugin:
        """Assemble the plugin around already constructed clients."""
        settings = settings or get_settings()
        group_id = make_group_id(settings.group_id_prefix, directory)
        user_group_id = make_user_group_id(settings.group_id_prefix, directory)

        limits = ContextLimitResolver(host, settings.default_context_limit)
        sessions = SessionManager(
            group_id,
            user_group_id,
            host,
            graph,
            default_context_limit=settings.default_context_limit,
        )
        retriever = MemoryRetriever(graph, settings.retrieval)
        pipeline = MemoryInjectionPipeline(
            retriever,
            fact_stale_days=settings.fact_stale_days,
            snapshot_max_chars=settings.snapshot_max_chars,
        )
        drift = DriftDetector(graph, settings.drift_threshold, settings.retrieval.drift_max_facts)
        builder = CompactionContextBuilder(retriever, settings.compaction, settings.fact_stale_days)
        compactor = PreemptiveCompactor(host, limits, settings.compaction)

        logger.info("plugin_initialized", group_id=group_id, user_group_id=user_group_id)
        return cls(
            settings=settings,
            graph=graph,
            sessions=sessions,
            chat=ChatHandler(sessions, pipeline, drift, graph, settings),
            event=EventHandler(sessions, graph, limits, settings, compactor),
            compacting=CompactingHandler(sessions, builder, settings),
            messages_transform=MessagesTransformHandler(sessions),
            system_transform=SystemTransformHandler(sessions),
        )

    @classmethod
    async def create(
        cls,
        host: HostClient,
        directory: str | None = None,
        settings: Settings | None = None,
    ) -> MemoryPlugin:
        """Configure logging, connect to Graphiti and build the plugin.

        A failed connection is not fatal: the client reconnects on first use.
        """
        settings = settings or get_settings()
        configure_logging(settings.log_level, settings.log_json)
        graph = GraphitiClient(settings.endpoint)
        if not await graph.connect():
            logger.warning(
                "graphiti_unavailable",
                endpoint=settings.endpoint,
                detail="memory features unavailable until the server is reachable",
            )
        return cls.build(host, graph, directory, settings)

    def hooks(self) -> dict[str, object]:
        """Handlers keyed by host hook name."""
        return {
            "event": self.event,
            "chat.message": self.chat,
            "experimental.session.compacting": self.compacting,
            "experimental.chat.messages.transform": self.messages_transform,
            "experimental.chat.system.transform": self.system_transform,
        }
