"""
Provider gateway: strategy selection, racing and tiered fallback.

The gateway owns no provider state. Each ``call`` walks the tiers of a
ProviderGroup (primary, then fallback) and returns the first successful
completion, recording every attempt along the way. Transport failures are
absorbed here; only total exhaustion escapes as ``ProviderExhausted``.
"""

import logging
import random
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from ..errors import ProviderAttempt, ProviderError, ProviderExhausted, truncate_error
from ..models import AgentOptions, ChatResult, ProviderTier, StrategyMode
from .base import BaseProvider, ProviderGroup

logger = logging.getLogger(__name__)

# Rough saving from serving a request on a free-tier provider.
FREE_TIER_SAVINGS_PER_1K_TOKENS = 0.01

# Upper bound of the random component added when jitter is enabled.
MAX_JITTER_SECONDS = 1.0


def estimate_savings(result: ChatResult) -> float:
    """Estimated cost saved when ``result`` was served by a free provider."""
    if result.usage is None:
        return 0.0
    winner = next(
        (a for a in reversed(result.attempts) if a.success and a.provider_id == result.provider_id),
        None,
    )
    if winner is None or winner.tier != ProviderTier.FREE.value:
        return 0.0
    return result.usage.total_tokens / 1000 * FREE_TIER_SAVINGS_PER_1K_TOKENS


class ProviderGateway:
    """
    Routes chat requests over a ProviderGroup.

    Strategies:
        SEQUENTIAL: providers of each tier in list order.
        RACING: race the first tier concurrently, later tiers sequentially.
        SMART: race the first tier only when every provider in it is paid,
            racing is enabled and the tier has more than one provider.

    Whatever the mode, a tier reached after another has failed is walked
    sequentially.
    """

    def __init__(
        self,
        mode: StrategyMode = StrategyMode.SMART,
        enable_racing: bool = True,
        timeout: float = 30.0,
        retry_delay: float = 0.0,
        retry_jitter: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.mode = mode
        self.enable_racing = enable_racing
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.retry_jitter = retry_jitter
        self._sleep = sleep

    @classmethod
    def from_options(cls, options: AgentOptions) -> "ProviderGateway":
        return cls(
            mode=options.strategy,
            enable_racing=options.enable_racing,
            timeout=options.timeout,
            retry_delay=options.retry_delay,
            retry_jitter=options.retry_jitter,
        )

    def should_race(self, pool: list[BaseProvider], mode: StrategyMode, first_tier: bool) -> bool:
        """Decide whether one tier runs concurrently."""
        if len(pool) < 2 or not first_tier:
            return False
        if mode is StrategyMode.RACING:
            return True
        if mode is StrategyMode.SMART:
            return self.enable_racing and all(p.tier is ProviderTier.PAID for p in pool)
        return False

    def call(
        self,
        messages: list[dict],
        group: ProviderGroup,
        mode: Optional[StrategyMode] = None,
        timeout: Optional[float] = None,
        tool_schemas: Optional[list[dict]] = None,
    ) -> ChatResult:
        """
        Obtain one completion from the group.

        Args:
            messages: OpenAI-style message dicts.
            group: Primary and fallback pools.
            mode: Strategy override for this call.
            timeout: Per-provider timeout in seconds.
            tool_schemas: Forwarded to providers with native tool support.

        Returns:
            ChatResult with ``attempts`` listing every invocation made.

        Raises:
            ProviderExhausted: If every provider in every tier failed.
        """
        mode = mode or self.mode
        timeout = timeout if timeout is not None else self.timeout
        attempts: list[ProviderAttempt] = []

        if not group:
            raise ProviderExhausted(attempts)

        # One worker per provider so a hung call never blocks the next attempt.
        executor = ThreadPoolExecutor(
            max_workers=len(group),
            thread_name_prefix="vanillaflow-provider",
        )
        try:
            for index, (pool_name, pool) in enumerate(group.tiers()):
                if self.should_race(pool, mode, first_tier=index == 0):
                    logger.info(f"Racing {len(pool)} {pool_name} providers")
                    result = self._race(executor, pool, messages, tool_schemas, timeout, attempts)
                else:
                    result = self._sequential(executor, pool, messages, tool_schemas, timeout, attempts)
                if result is not None:
                    result.attempts = attempts
                    return result
                logger.warning(f"All {pool_name} providers failed")
        finally:
            # Losing racers and timed-out calls are abandoned, not awaited.
            executor.shutdown(wait=False, cancel_futures=True)

        logger.error(f"Provider gateway exhausted after {len(attempts)} attempts")
        raise ProviderExhausted(attempts)

    # =========================================================================
    # Strategies
    # =========================================================================

    def _sequential(
        self,
        executor: ThreadPoolExecutor,
        pool: list[BaseProvider],
        messages: list[dict],
        tool_schemas: Optional[list[dict]],
        timeout: float,
        attempts: list[ProviderAttempt],
    ) -> Optional[ChatResult]:
        for provider in pool:
            if attempts:
                self._backoff()
            start = time.monotonic()
            future = executor.submit(self._invoke, provider, messages, tool_schemas, timeout)
            try:
                result = future.result(timeout=timeout)
            except FutureTimeoutError:
                future.cancel()
                self._record_failure(attempts, provider, start, f"TimeoutError: no response within {timeout}s")
                continue
            except ProviderError as e:
                self._record_failure(attempts, provider, start, str(e.cause))
                continue
            self._record_success(attempts, provider, start)
            return result
        return None

    def _race(
        self,
        executor: ThreadPoolExecutor,
        pool: list[BaseProvider],
        messages: list[dict],
        tool_schemas: Optional[list[dict]],
        timeout: float,
        attempts: list[ProviderAttempt],
    ) -> Optional[ChatResult]:
        start = time.monotonic()
        deadline = start + timeout
        futures: dict[Future, BaseProvider] = {
            executor.submit(self._invoke, provider, messages, tool_schemas, timeout): provider
            for provider in pool
        }
        pending = set(futures)
        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
            for future in done:
                provider = futures[future]
                try:
                    result = future.result()
                except ProviderError as e:
                    self._record_failure(attempts, provider, start, str(e.cause))
                    continue
                self._record_success(attempts, provider, start)
                logger.info(f"Race won by '{provider.id}' in {time.monotonic() - start:.2f}s")
                for loser in pending:
                    loser.cancel()
                return result

        for future in pending:
            future.cancel()
            self._record_failure(
                attempts, futures[future], start, f"TimeoutError: no response within {timeout}s"
            )
        return None

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _invoke(
        provider: BaseProvider,
        messages: list[dict],
        tool_schemas: Optional[list[dict]],
        timeout: float,
    ) -> ChatResult:
        try:
            return provider.chat(messages, tool_schemas=tool_schemas, timeout=timeout)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(provider.id, e) from e

    def _backoff(self) -> None:
        delay = self.retry_delay
        if self.retry_jitter:
            delay += random.uniform(0, MAX_JITTER_SECONDS)
        if delay > 0:
            logger.debug(f"Waiting {delay:.2f}s before next provider")
            self._sleep(delay)

    @staticmethod
    def _record_success(attempts: list[ProviderAttempt], provider: BaseProvider, start: float) -> None:
        latency = time.monotonic() - start
        attempts.append(
            ProviderAttempt(
                provider_id=provider.id,
                tier=provider.tier.value,
                success=True,
                latency=latency,
            )
        )
        logger.info(f"Provider '{provider.id}' succeeded in {latency:.2f}s")

    @staticmethod
    def _record_failure(
        attempts: list[ProviderAttempt], provider: BaseProvider, start: float, cause: str
    ) -> None:
        attempts.append(
            ProviderAttempt(
                provider_id=provider.id,
                tier=provider.tier.value,
                success=False,
                latency=time.monotonic() - start,
                cause=truncate_error(cause),
            )
        )
        logger.warning(f"Provider '{provider.id}' failed: {truncate_error(cause, 200)}")
