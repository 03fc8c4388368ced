"""Swappable adapters for the outbound ports (payment gateway, remote cart store)."""

import structlog

logger = structlog.get_logger(__name__)


class AdapterSlot:
    """The active adapter for one port, created from ``default_factory`` on first use."""

    def __init__(self, port: str, default_factory):
        self.port = port
        self._default_factory = default_factory
        self._adapter = None

    def get(self):
        if self._adapter is None:
            self._adapter = self._default_factory()
        return self._adapter

    def set(self, adapter) -> None:
        logger.debug("Adapter swapped", port=self.port, adapter=type(adapter).__name__)
        self._adapter = adapter

    def reset(self) -> None:
        self._adapter = None
