"""
uvicorn server whose exit is driven by the connection supervisor.
"""

import asyncio
from typing import Optional

import uvicorn

from shared.logging import get_logger
from .supervisor import ConnectionSupervisor


class SupervisedServer(uvicorn.Server):
    """uvicorn server that hands SIGTERM/SIGINT to the supervisor.

    The first signal starts ``supervisor.shutdown()``: the store disconnects,
    then the supervisor's ``on_shutdown`` callback sets ``should_exit`` and
    uvicorn stops accepting connections. A second signal falls through to
    uvicorn's own handling, which forces the exit.
    """

    def __init__(self, config: uvicorn.Config, supervisor: ConnectionSupervisor):
        super().__init__(config)
        self.supervisor = supervisor
        self.logger = get_logger("store.server")
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_task: Optional[asyncio.Task] = None

    async def serve(self, sockets=None):
        self._loop = asyncio.get_running_loop()
        await super().serve(sockets=sockets)

    def handle_exit(self, sig, frame):
        if self._loop is None or self._shutdown_task is not None:
            super().handle_exit(sig, frame)
            return
        self.logger.info("Shutdown signal received", signal=int(sig))
        self._loop.call_soon_threadsafe(self._begin_shutdown)

    def _begin_shutdown(self):
        if self._shutdown_task is None:
            self._shutdown_task = self._loop.create_task(self.supervisor.shutdown())
