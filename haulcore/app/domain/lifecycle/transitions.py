"""
Transition tables and conditional status writes.

Each lifecycle declares its rules as ``action -> (allowed from-states, to-state)``.
Writes are a single UPDATE whose WHERE clause carries the id, the tenant
scope and the allowed from-states, so a stale read can never apply a
transition to the wrong status or the wrong company.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Generic, Iterable, Mapping, Optional, Tuple, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import AppException, InvalidTransitionError, ResourceNotFoundError
from haulcore.app.domain.results import ActionResult

S = TypeVar("S")
A = TypeVar("A")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransitionTable(Generic[S, A]):
    """(from-state x action) -> to-state, or reject."""

    def __init__(self, entity: str, rules: Mapping[A, Tuple[Iterable[S], S]]):
        self.entity = entity
        self._rules: Dict[A, Tuple[FrozenSet[S], S]] = {
            action: (frozenset(sources), target) for action, (sources, target) in rules.items()
        }

    def sources(self, action: A) -> FrozenSet[S]:
        return self._rules[action][0]

    def target(self, action: A) -> S:
        return self._rules[action][1]

    def next_status(self, current: S, action: A) -> Optional[S]:
        """The state ``action`` leads to from ``current``, or None if rejected."""
        sources, target = self._rules[action]
        if current in sources:
            return target
        return None

    @property
    def actions(self):
        return list(self._rules)


async def apply_transition(
    db: AsyncSession,
    model,
    entity_id: int,
    scope: Iterable[Any],
    table: TransitionTable,
    action,
    values: Optional[Dict[str, Any]] = None,
    guards: Iterable[Any] = (),
    on_guard_failure: Optional[Callable[[], Awaitable[AppException]]] = None,
) -> ActionResult[None]:
    """
    Conditionally move ``model`` row ``entity_id`` to the action's target state.

    Exactly one UPDATE statement is issued. When it matches no row the row is
    re-read under the same scope to tell NotFound from an invalid transition.
    Extra ``guards`` join the UPDATE's WHERE clause; when the status allowed
    the action but a guard did not, ``on_guard_failure`` builds the error.
    Does not commit.
    """
    scope = list(scope)
    stmt = (
        update(model)
        .where(model.id == entity_id, *scope, model.status.in_(table.sources(action)), *guards)
        .values(status=table.target(action), **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 1:
        return ActionResult.success()

    current = await db.execute(select(model.status).where(model.id == entity_id, *scope))
    status = current.scalar_one_or_none()
    if status is None:
        return ActionResult.failure(ResourceNotFoundError(table.entity, entity_id))
    if status in table.sources(action) and on_guard_failure is not None:
        return ActionResult.failure(await on_guard_failure())
    return ActionResult.failure(
        InvalidTransitionError(table.entity, entity_id, status.value, action.value)
    )
