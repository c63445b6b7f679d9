"""
Operator Context

Everything the reconciliation loop depends on, built once at startup and
passed down explicitly.
"""

from dataclasses import dataclass, field

from reboot_operator.common.config import CoordinatorSettings
from reboot_operator.common.rate_limit import TokenBucketRateLimiter
from reboot_operator.storage.base import EventSink, StateRepository

from .selectors import Selector, just_rebooted, reboot_completed, wants_reboot


@dataclass
class OperatorContext:
    """Dependencies of one operator instance"""
    repository: StateRepository
    events: EventSink
    settings: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    rate_limiter: TokenBucketRateLimiter | None = None

    just_rebooted: Selector = just_rebooted
    wants_reboot: Selector = wants_reboot
    reboot_completed: Selector = reboot_completed

    def __post_init__(self) -> None:
        if self.rate_limiter is None:
            self.rate_limiter = TokenBucketRateLimiter(
                qps=self.settings.poll_qps,
                burst=self.settings.poll_burst,
            )

    async def close(self) -> None:
        await self.events.close()
        await self.repository.close()
