"""Long-running collection loop."""

from __future__ import annotations

import logging
import threading

from npufd.core.collector import FeaturesCollector
from npufd.core.errors import CollectionCancelledError, NpufdError

LOGGER = logging.getLogger(__name__)


class Agent:
    """Runs one collection cycle at a time until the stop event is set.

    Failed cycles are logged and the previously published file stays in
    place until the next successful cycle.
    """

    def __init__(self, collector: FeaturesCollector, *, sleep_interval_s: float) -> None:
        self.collector = collector
        self.sleep_interval_s = sleep_interval_s

    def run_once(self, stop: threading.Event) -> None:
        self.collector.collect_once(cancel=stop)

    def run_forever(self, stop: threading.Event) -> None:
        self._cycle(stop, "initial")
        while not stop.wait(self.sleep_interval_s):
            self._cycle(stop, "periodic")
        LOGGER.info("Stop requested, exiting collection loop")

    def _cycle(self, stop: threading.Event, kind: str) -> None:
        try:
            self.collector.collect_once(cancel=stop)
        except CollectionCancelledError:
            LOGGER.info("%s collection cancelled", kind.capitalize())
        except NpufdError as exc:
            LOGGER.error("%s collection failed: %s", kind.capitalize(), exc)
