import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

log = logging.getLogger("embeddings.strategies")

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    run: Callable[..., Awaitable[T]]


@dataclass(frozen=True)
class StrategyOutcome(Generic[T]):
    strategy: str
    value: T


class AllStrategiesFailed(Exception):
    def __init__(self, errors: dict[str, Exception]):
        self.errors = errors
        summary = "; ".join(f"{name}: {err}" for name, err in errors.items()) or "no strategies configured"
        super().__init__(summary)


async def first_success(strategies: list[Strategy[T]], *args: Any, **kwargs: Any) -> StrategyOutcome[T]:
    """Try strategies in order; return the first that does not raise."""
    errors: dict[str, Exception] = {}
    for strategy in strategies:
        try:
            value = await strategy.run(*args, **kwargs)
        except Exception as e:
            log.debug(f"strategy {strategy.name} failed: {e}")
            errors[strategy.name] = e
            continue
        return StrategyOutcome(strategy=strategy.name, value=value)
    raise AllStrategiesFailed(errors)
