import asyncio

from connection import ConnectionState
from constants import HEARTBEAT_INTERVAL_MS
from logging_config import get_logger
from room_directory import RoomDirectory
from tasks import PeriodicTask

logger = get_logger(__name__)


class LivenessMonitor(PeriodicTask):
    """Probe every open connection each cycle and terminate the ones that
    never acknowledged the previous probe."""

    name = "liveness monitor"

    def __init__(self, directory: RoomDirectory, interval_ms: int = HEARTBEAT_INTERVAL_MS):
        super().__init__(interval_ms)
        self.directory = directory

    async def run_once(self):
        await self.sweep()

    async def sweep(self) -> int:
        """Returns the number of connections terminated.

        Dead connections leave the directory before anything is awaited. Their
        closes and the probes to the rest then go out together, so a peer that
        never answers its close frame does not hold up the others.
        """
        dead = []
        probing = []
        for connection in self.directory.connections:
            if connection.state is not ConnectionState.OPEN:
                continue
            if not connection.alive:
                logger.info(f"Terminating dead connection {connection.connection_id} (room: {connection.room})")
                self.directory.unregister(connection)
                dead.append(connection)
            else:
                probing.append(connection)

        results = await asyncio.gather(
            *(conn.terminate() for conn in dead),
            *(conn.probe() for conn in probing),
            return_exceptions=True,
        )
        for conn, result in zip(dead + probing, results):
            if isinstance(result, Exception):
                logger.warning(f"Liveness sweep could not reach connection {conn.connection_id}: {result}")

        logger.debug(f"Liveness sweep: probed {len(probing)}, terminated {len(dead)}")
        return len(dead)
