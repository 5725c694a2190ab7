"""Connection state tracking.

:class:`ConnectionState` is the single state holder read by the apply layer
and the sync engine; :class:`ConnectionMonitor` is the only writer.  State
changes come from explicit health probes (:meth:`check_connection`) and from
the reachability callback wired into :class:`InventoryApi`, so ordinary
traffic keeps the state fresh between probes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from stockflow import metrics
from stockflow.config import Settings
from stockflow.events import EventBus
from stockflow.events import EventType
from stockflow.exceptions import StockflowError
from stockflow.models.enums import NotificationLevel
from stockflow.services.inventory_api import InventoryApi
from stockflow.services.notifications import Notifier
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ConnectionState:
    is_connected: bool = True
    last_checked: Optional[datetime] = None


class ConnectionMonitor:
    """Owns :class:`ConnectionState` and publishes its transitions."""

    def __init__(
        self,
        settings: Settings,
        api: InventoryApi,
        event_bus: EventBus,
        notifier: Notifier,
        state: Optional[ConnectionState] = None,
    ):
        self._settings = settings
        self._api = api
        self._event_bus = event_bus
        self._notifier = notifier
        self.state = state or ConnectionState()
        if settings.offline_mode:
            self.state.is_connected = False
        metrics.connected.set(1 if self.state.is_connected else 0)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        if self._settings.offline_mode:
            return False
        return self.state.is_connected

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_connected(self, connected: bool) -> None:
        """Override the state; publishes only on a transition."""
        if self._settings.offline_mode:
            connected = False

        previous = self.state.is_connected
        self.state.is_connected = connected
        metrics.connected.set(1 if connected else 0)

        if previous == connected:
            return

        if connected:
            logger.info("Remote API reachable again")
            self._notifier.notify_nowait(NotificationLevel.SUCCESS, "Connection restored")
        else:
            logger.warning("Remote API unreachable; switching to offline mode")
            self._notifier.notify_nowait(
                NotificationLevel.WARNING, "Connection lost. Changes will be saved locally until it is restored"
            )
        self._event_bus.publish_nowait(EventType.CONNECTION_CHANGED, {"is_connected": connected})

    async def check_connection(self) -> bool:
        """Probe the health endpoint.  Never raises."""
        self.state.last_checked = utc_now()

        if self._settings.offline_mode:
            self.set_connected(False)
            return False

        try:
            await self._api.health()
            reachable = True
        except StockflowError as e:
            logger.debug(f"Health probe failed: {e}")
            reachable = False
        except Exception as e:  # noqa: BLE001 – probe failures are steady state
            logger.warning(f"Unexpected error during health probe: {e}")
            reachable = False

        self.set_connected(reachable)
        return reachable
