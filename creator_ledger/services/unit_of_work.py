from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Tuple, Union

logger = logging.getLogger(__name__)

Compensation = Callable[[], Union[Any, Awaitable[Any]]]


class UnitOfWork:
    """
    Ordered compensations for a multi-step write.

    Steps register an undo action after they succeed. If the block exits with an
    exception the undo actions run newest first and the original exception
    propagates; a failing undo is logged and the rest still run.

        async with UnitOfWork("send_tip") as uow:
            intent = await gateway.create_payment_intent(...)
            uow.on_rollback("cancel payment intent", lambda: gateway.cancel_payment_intent(intent["id"]))
            store.put_tip(tip)
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._compensations: List[Tuple[str, Compensation]] = []
        self.rolled_back = False

    def on_rollback(self, label: str, fn: Compensation) -> None:
        self._compensations.append((label, fn))

    async def rollback(self) -> None:
        self.rolled_back = True
        while self._compensations:
            label, fn = self._compensations.pop()
            try:
                result = fn()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("compensation failed", extra={"unit_of_work": self.name, "step": label})

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            logger.warning(
                "unit of work failed, rolling back",
                extra={"unit_of_work": self.name, "steps": len(self._compensations), "error": repr(exc)},
            )
            await self.rollback()
        else:
            self._compensations.clear()
        return False
