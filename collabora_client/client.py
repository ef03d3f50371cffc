from __future__ import annotations

from collabora_client.calendar_api import CalendarClient
from collabora_client.chat_api import ChatClient
from collabora_client.dashboard_api import DashboardClient
from collabora_client.events import EventBridge
from collabora_client.facade import FeatureClient
from collabora_client.gateway import ClientConfig, HttpGateway, RequestGateway
from collabora_client.sharing_api import SharingClient
from collabora_client.task_api import TaskClient


class CollaboraClient:
    """All feature clients over one gateway and one shared event bridge.

    Use as an async context manager, or call ``aclose()``, so every polling
    loop and heartbeat is stopped before the gateway goes away.
    """

    def __init__(
        self,
        gateway: RequestGateway | None = None,
        *,
        config: ClientConfig | None = None,
        events: EventBridge | None = None,
    ) -> None:
        self._owns_gateway = gateway is None
        self.gateway: RequestGateway = gateway if gateway is not None else HttpGateway(config)
        self.events = events if events is not None else EventBridge()

        self.calendar = CalendarClient(self.gateway, events=self.events)
        self.chat = ChatClient(self.gateway, events=self.events)
        self.tasks = TaskClient(self.gateway, events=self.events)
        self.sharing = SharingClient(self.gateway, events=self.events)
        self.dashboard = DashboardClient(self.gateway, events=self.events)

    @property
    def features(self) -> list[FeatureClient]:
        return [self.calendar, self.chat, self.tasks, self.sharing, self.dashboard]

    def active_subscriptions(self) -> int:
        return sum(len(f.subscriptions) for f in self.features)

    def cleanup(self) -> None:
        for feature in self.features:
            feature.cleanup()

    async def aclose(self) -> None:
        self.cleanup()
        if self._owns_gateway and isinstance(self.gateway, HttpGateway):
            await self.gateway.aclose()

    async def __aenter__(self) -> CollaboraClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
