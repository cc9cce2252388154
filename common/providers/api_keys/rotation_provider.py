import threading
from typing import List, Dict, Optional
from datetime import datetime, timedelta
from .provider_enum import APIProviderType
from .interface import APIKeyRotationInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

MAX_CONSECUTIVE_FAILURES = 3
COOLDOWN = timedelta(minutes=5)


class KeyHealth:
    """Consecutive-failure counter for one key; benched for COOLDOWN at the limit."""

    def __init__(self, key: str):
        self.key = key
        self.failure_count = 0
        self.last_failure: Optional[datetime] = None
        self.cooldown_until: Optional[datetime] = None

    def is_healthy(self) -> bool:
        if self.cooldown_until and datetime.now() < self.cooldown_until:
            return False
        if self.cooldown_until:
            # Cooldown served, give the key another chance
            self.report_success()
        return self.failure_count < MAX_CONSECUTIVE_FAILURES

    def report_failure(self):
        self.failure_count += 1
        self.last_failure = datetime.now()
        if self.failure_count >= MAX_CONSECUTIVE_FAILURES:
            self.cooldown_until = self.last_failure + COOLDOWN
            logger.warning(f"Key entering cooldown until {self.cooldown_until}")

    def report_success(self):
        self.failure_count = 0
        self.last_failure = None
        self.cooldown_until = None


class APIKeyRotationProvider(APIKeyRotationInterface):
    def __init__(self, keys: List[str], provider_type: APIProviderType):
        self.keys = list(keys)
        self.provider_type = provider_type
        self.current_index = 0
        self.lock = threading.Lock()
        self.key_health: Dict[str, KeyHealth] = {key: KeyHealth(key) for key in keys}

        logger.info(f"Initialized {provider_type.value} rotation with {len(keys)} keys")

    def get_next_key(self) -> str:
        if not self.keys:
            raise ValueError(f"No API keys configured for {self.provider_type.value}")

        with self.lock:
            for _ in range(len(self.keys)):
                key = self.keys[self.current_index]
                self.current_index = (self.current_index + 1) % len(self.keys)
                if self.key_health[key].is_healthy():
                    return key

            # Every key is benched; a request with a benched key beats no request
            logger.error(
                f"{self.provider_type.value}: All keys unhealthy, using first key anyway"
            )
            return self.keys[0]

    def report_failure(self, key: str):
        with self.lock:
            if key in self.key_health:
                self.key_health[key].report_failure()

    def report_success(self, key: str):
        with self.lock:
            if key in self.key_health:
                self.key_health[key].report_success()

    def get_healthy_key_count(self) -> int:
        """Get the number of currently healthy keys."""
        with self.lock:
            return sum(1 for health in self.key_health.values() if health.is_healthy())
