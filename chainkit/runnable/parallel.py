"""Parallel - Batch execution and concurrent fan-out

run_batch() is the default batch() of every Runnable: it launches one
invoke() per input as asyncio tasks and gathers the results in input order.
RunnableMap runs several Runnables concurrently on the same input.

Both fail as a whole: the first error cancels the invocations still running
and is re-raised unchanged.
"""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from pydantic import Field

from chainkit.exceptions import ConfigurationError
from chainkit.logger import logger
from chainkit.runnable.base import BatchOptions, Runnable
from chainkit.runnable.options import RunnableOptions, default_max_concurrency


def resolve_batch_options(options: BatchOptions, size: int) -> List[Optional[RunnableOptions]]:
    """Expand batch options into one options value per input

    Args:
        options: None, a single options value, or a list matched positionally
        size: Number of inputs

    Returns:
        List of ``size`` options values

    Raises:
        ConfigurationError: If a positional list does not have ``size`` entries
    """
    if options is None or isinstance(options, RunnableOptions):
        return [options] * size
    per_item = list(options)
    if len(per_item) != size:
        raise ConfigurationError(
            f"Got {len(per_item)} options for {size} inputs; positional options must match inputs 1:1"
        )
    return per_item


def _concurrency_limit(options: BatchOptions, per_item: List[Optional[RunnableOptions]]) -> Optional[int]:
    if isinstance(options, RunnableOptions) and options.max_concurrency is not None:
        return options.max_concurrency
    limits = [item.max_concurrency for item in per_item if item is not None and item.max_concurrency is not None]
    if limits:
        return min(limits)
    return default_max_concurrency()


async def gather_or_cancel(coros: Sequence[Awaitable[Any]], label: str) -> List[Any]:
    """Run awaitables as tasks, returning results in order

    If one fails, the remaining tasks are cancelled and awaited before the
    original error is re-raised.
    """
    tasks = [asyncio.create_task(coro) for coro in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for index, task in enumerate(tasks):
            if task.done() and not task.cancelled() and task.exception() is not None:
                logger.error(f"{label}: item {index} failed: {task.exception()!r}")
            elif not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_batch(runnable: Runnable, inputs: Sequence[Any], options: BatchOptions = None) -> List[Any]:
    """Invoke ``runnable`` once per input, concurrently

    Positional options are validated before anything is launched. The
    concurrency cap is the max_concurrency of the options (the smallest one
    for positional options) or the [runnable] configuration default.

    Returns:
        Outputs in input order
    """
    items = list(inputs)
    per_item = resolve_batch_options(options, len(items))
    if not items:
        return []

    limit = _concurrency_limit(options, per_item)
    semaphore = asyncio.Semaphore(limit) if limit else None

    async def run_one(value: Any, item_options: Optional[RunnableOptions]) -> Any:
        if semaphore is None:
            return await runnable.invoke(value, item_options)
        async with semaphore:
            return await runnable.invoke(value, item_options)

    logger.debug(
        f"Batch '{runnable.display_name}': {len(items)} items"
        + (f", max_concurrency={limit}" if limit else "")
    )
    return await gather_or_cancel(
        [run_one(value, item_options) for value, item_options in zip(items, per_item)],
        label=f"Batch '{runnable.display_name}'",
    )


class RunnableMap(Runnable):
    """Run several Runnables concurrently on the same input

    The output is a dict with the same keys as ``steps``.

    Example:
        chain = Runnable.from_mapping({"context": retriever, "question": Runnable.passthrough()}) | prompt

    Attributes:
        steps: Named Runnables to run
    """

    steps: Dict[str, Runnable] = Field(..., description="Named Runnables run on the same input")

    @classmethod
    def from_units(cls, *units: Runnable) -> "RunnableMap":
        """Key each unit by its display name, suffixing repeated names

        An unnamed RunnableMap among ``units`` contributes its entries, so
        a & b & c builds one flat map.
        """
        steps: Dict[str, Runnable] = {}

        def add(key: str, unit: Runnable) -> None:
            unique, suffix = key, 1
            while unique in steps:
                unique = f"{key}_{suffix}"
                suffix += 1
            steps[unique] = unit

        for unit in units:
            if isinstance(unit, RunnableMap) and unit.name is None:
                for key, step in unit.steps.items():
                    add(key, step)
            else:
                add(unit.display_name, unit)
        return cls(steps=steps)

    @property
    def display_name(self) -> str:
        return self.name or "{" + ", ".join(self.steps) + "}"

    async def invoke(self, input: Any, options: Optional[RunnableOptions] = None) -> Dict[str, Any]:
        keys = list(self.steps)
        results = await gather_or_cancel(
            [self.steps[key].invoke(input, options) for key in keys],
            label=f"Map '{self.display_name}'",
        )
        return dict(zip(keys, results))
