"""Sequential composition of adapter operations.

Compound operations such as ``verify`` (authorize, then void the
authorization) are run through :class:`SequentialComposition`, which runs
steps strictly in order and decides which step's outcome the caller sees::

    composition = SequentialComposition(Policy.USE_FIRST_RESPONSE)
    composition.process(lambda run: adapter.authorize(100, card))
    composition.process(lambda run: adapter.void(run.reference), ignore_result=True)
    return composition.result()

Each operation receives the running composition so it can read the records
of earlier steps.
"""

import logging
from enum import Enum
from typing import Callable, Iterable, List, NamedTuple, Optional

from .exceptions import CompositionError, PaymentError
from .models import Outcome, StandardErrorCode

logger = logging.getLogger(__name__)


class Policy(str, Enum):
    """How the reported outcome is picked from the steps of a run."""

    USE_FIRST_RESPONSE = "use_first_response"
    FIRST = "first"


class State(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"


Operation = Callable[["SequentialComposition"], Outcome]


class Step(NamedTuple):
    operation: Operation
    ignore_result: bool = False


class SequentialComposition:
    """Runs operations in order and selects one outcome for the caller.

    ``USE_FIRST_RESPONSE`` runs every step and reports the first
    non-ignored step's outcome. ``FIRST`` stops at the first failing
    non-ignored step and reports it, otherwise the last non-ignored outcome.
    Steps flagged ``ignore_result`` never decide the result and never stop
    the run.

    A :class:`PaymentError` raised by a step (a transport fault, a foreign
    token, ...) becomes a failing outcome for that step and is not re-raised.
    """

    def __init__(self, policy: Policy = Policy.FIRST) -> None:
        self.policy = Policy(policy)
        self.state = State.PENDING
        self.responses: List[Outcome] = []
        self.primary: Optional[Outcome] = None
        self._step = 0
        self._finished = False

    @classmethod
    def run(cls, policy: Policy, steps: Iterable[Step]) -> Outcome:
        composition = cls(policy)
        for step in steps:
            composition.process(step.operation, ignore_result=step.ignore_result)
        return composition.result()

    @property
    def last(self) -> Optional[Outcome]:
        return self.responses[-1] if self.responses else None

    @property
    def reference(self) -> Optional[str]:
        return self.primary.reference if self.primary is not None else None

    @property
    def succeeded(self) -> bool:
        return self.primary.succeeded if self.primary is not None else True

    def process(self, operation: Operation, ignore_result: bool = False) -> Optional[Outcome]:
        """Run one step and return its outcome, or ``None`` if the run was aborted."""
        if self._finished:
            raise CompositionError("composition already produced its result")
        if self.state is State.ABORTED:
            logger.debug("Skipping step %d of aborted composition", self._step + 1)
            return None

        self._step += 1
        self.state = State.RUNNING
        outcome = self._invoke(operation)
        self.responses.append(outcome)

        if not ignore_result:
            if self.policy is Policy.USE_FIRST_RESPONSE:
                if self.primary is None:
                    self.primary = outcome
            else:
                self.primary = outcome
                if not outcome.succeeded:
                    logger.info("Composition aborted at step %d: %s", self._step, outcome.message)
                    self.state = State.ABORTED
        return outcome

    def _invoke(self, operation: Operation) -> Outcome:
        try:
            return operation(self)
        except PaymentError as exc:
            logger.warning(
                "Step %d raised %s; recording it as a failed outcome: %s",
                self._step,
                exc.__class__.__name__,
                exc,
            )
            return Outcome.failure(
                str(exc) or exc.__class__.__name__,
                standard_error=StandardErrorCode.PROCESSING_ERROR,
                raw_fields={"error": {"type": exc.__class__.__name__, "message": str(exc)}},
            )

    def result(self) -> Outcome:
        """Finish the run and return the selected outcome."""
        self._finished = True
        if self.state is not State.ABORTED:
            self.state = State.COMPLETED
        if self.primary is not None:
            return self.primary
        # no steps, or only ignored ones
        return Outcome(succeeded=True)
