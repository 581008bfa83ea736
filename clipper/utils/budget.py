"""Wall-clock budgets for whole requests."""

import asyncio
from typing import Awaitable, TypeVar

from clipper.utils.exceptions import BudgetExceededError

T = TypeVar("T")


async def with_budget(work: Awaitable[T], budget_seconds: float) -> T:
    """Await `work`, cancelling it once the budget runs out.

    Cancellation unwinds the pipeline's `finally` blocks, so staged files are
    still removed before the error response is sent.
    """
    try:
        return await asyncio.wait_for(work, timeout=budget_seconds)
    except asyncio.TimeoutError:
        raise BudgetExceededError(budget_seconds)
