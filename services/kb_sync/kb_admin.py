"""Wiring for one knowledge-base admin session.

Builds the clients from the environment, boots them, loads the session's
entry lists and closes everything again on exit.

Usage:
    async with open_kb_admin() as admin:
        outcome = await admin.lifecycle.do_create(draft, actor)
        result = await admin.bulk.do_bulk_archive(ids, actor, cascade=True)
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

import httpx

from services.kb_sync.AuditTrailRecorder import AuditTrailRecorder
from services.kb_sync.BulkOperationCoordinator import BulkOperationCoordinator
from services.kb_sync.EntryLifecycleService import EntryLifecycleService
from services.kb_sync.EntrySession import EntrySession
from services.kb_sync.SyncOrchestrator import SyncOrchestrator
from shared.clients.ClientInterface import ClientInterface
from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface
from shared.clients.entrystore.EntryReaderManager import EntryReaderManager
from shared.clients.kb.duplicates.DuplicateDetector import DuplicateDetector
from shared.clients.kb.entries.EntryStoreClient import EntryStoreClient
from shared.clients.kb.vectors.VectorIndexClient import VectorIndexClient
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.config import KBApiConfig


class KBAdmin:
    """Clients and services of one admin session, sharing one entry session."""

    def __init__(
        self,
        helper_config: HelperConfig,
        entry_reader: EntryReaderInterface,
        api_config: KBApiConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        api_config = api_config or KBApiConfig.from_helper_config(helper_config)
        audit_recorder = AuditTrailRecorder(clock=clock)

        # clients
        self.entry_reader = entry_reader
        self.entry_store = EntryStoreClient(helper_config=helper_config, entry_reader=entry_reader, api_config=api_config)
        self.vector_client = VectorIndexClient(helper_config=helper_config, api_config=api_config)
        self.duplicate_detector = DuplicateDetector(helper_config=helper_config, api_config=api_config)

        # services
        self.session = EntrySession(helper_config=helper_config, entry_reader=entry_reader)
        self.orchestrator = SyncOrchestrator(
            helper_config=helper_config,
            vector_client=self.vector_client,
            entry_store=self.entry_store,
            clock=clock,
        )
        self.lifecycle = EntryLifecycleService(
            helper_config=helper_config,
            session=self.session,
            entry_store=self.entry_store,
            entry_reader=entry_reader,
            duplicate_detector=self.duplicate_detector,
            orchestrator=self.orchestrator,
            audit_recorder=audit_recorder,
        )
        self.bulk = BulkOperationCoordinator(
            helper_config=helper_config,
            session=self.session,
            entry_store=self.entry_store,
            vector_client=self.vector_client,
            orchestrator=self.orchestrator,
            audit_recorder=audit_recorder,
        )

    def get_clients(self) -> list[ClientInterface]:
        return [self.entry_reader, self.entry_store, self.vector_client, self.duplicate_detector]

    async def boot(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        reader_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Boots every client. KB backend clients that are already booted are left as they are.

        Args:
            transport: Optional transport for the KB backend clients.
            reader_transport: Optional transport for the entry store reader.
        """
        await self.entry_reader.boot(transport=reader_transport)
        for client in (self.entry_store, self.vector_client, self.duplicate_detector):
            if not client.is_booted():
                await client.boot(transport=transport)
        self.logging.info("KB admin clients booted (entry store reader: %s)", self.entry_reader.get_engine_name())

    async def close(self) -> None:
        for client in self.get_clients():
            await client.close()


@asynccontextmanager
async def open_kb_admin(
    helper_config: HelperConfig | None = None,
    entry_reader: EntryReaderInterface | None = None,
    api_config: KBApiConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    reader_transport: httpx.AsyncBaseTransport | None = None,
    refresh: bool = True,
) -> AsyncIterator[KBAdmin]:
    """
    Opens a booted admin session and closes all clients on exit.

    Args:
        helper_config (HelperConfig | None): Config helper; built from the environment when omitted.
        entry_reader (EntryReaderInterface | None): Reader to use; chosen by ENTRYSTORE_ENGINE when omitted.
        api_config (KBApiConfig | None): Backend settings; read from KB_API_BASE_URL when omitted.
        transport: Optional transport for the KB backend clients.
        reader_transport: Optional transport for the entry store reader.
        refresh (bool): Load the active and archived entry lists right away.

    Yields:
        KBAdmin: The wired session.
    """
    if helper_config is None:
        helper_config = HelperConfig(logger=setup_logging())
    if entry_reader is None:
        entry_reader = EntryReaderManager(helper_config=helper_config).get_client()

    admin = KBAdmin(helper_config=helper_config, entry_reader=entry_reader, api_config=api_config)
    try:
        await admin.boot(transport=transport, reader_transport=reader_transport)
        if refresh:
            await admin.session.do_refresh()
        yield admin
    finally:
        await admin.close()
