"""Liveness checks for the conversation store and the model client."""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict

from config import HEALTH_CHECK_TIMEOUT
from services.conversation_store import ConversationStore
from services.llm_client import ModelClient

logger = logging.getLogger(__name__)

OK = "ok"
FAIL = "fail"


@dataclass
class HealthReport:
    """Per-component status plus the aggregate."""
    components: Dict[str, str] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return bool(self.components) and all(status == OK for status in self.components.values())

    @property
    def status(self) -> str:
        return OK if self.healthy else FAIL


class HealthMonitor:
    """Runs every component probe independently and aggregates the results."""

    def __init__(
        self,
        store: ConversationStore,
        model_client: ModelClient,
        timeout: float = HEALTH_CHECK_TIMEOUT
    ):
        self.timeout = timeout
        self.probes: Dict[str, Callable[[], bool]] = {
            "store": store.health_check,
            "model": model_client.health_check,
        }

    def check_health(self) -> HealthReport:
        """
        Probe all components concurrently.

        A probe that returns False, raises, or is still running when the
        timeout elapses is reported as ``fail``; it never affects the other
        probes. The timeout covers the whole check, not each probe.
        """
        report = HealthReport()
        executor = ThreadPoolExecutor(max_workers=len(self.probes), thread_name_prefix="health")
        try:
            futures = {name: executor.submit(probe) for name, probe in self.probes.items()}
            done, _ = wait(futures.values(), timeout=self.timeout)
            for name, future in futures.items():
                report.components[name] = self._resolve(name, future, future in done)
        finally:
            # do not wait on a hung probe
            executor.shutdown(wait=False)

        log = logger.info if report.healthy else logger.warning
        log(f"Health check: {report.status} {report.components}")
        return report

    def _resolve(self, name: str, future, finished: bool) -> str:
        if not finished:
            future.cancel()
            logger.warning(f"Health probe timed out after {self.timeout}s", extra={"component": name})
            return FAIL
        try:
            return OK if future.result() else FAIL
        except Exception as e:
            logger.warning(f"Health probe raised {type(e).__name__}", extra={"component": name})
            return FAIL
