"""Publish-attempt lifecycle state machine.

Tracks the stage of one publish attempt on one adapter and enforces the
valid stage order.  Any stage may fail; a failed attempt is terminal and
its later stages are never run.
"""

from __future__ import annotations

from crosspost.models import AdapterStage


class AdapterLifecycle:
    """Finite state machine for a single publish attempt.

    Valid transitions::

        UNINITIALIZED       -> INITIALIZED
        INITIALIZED         -> TRANSFORMED
        TRANSFORMED         -> RESOURCES_PROCESSED | DRAFTED
        RESOURCES_PROCESSED -> DRAFTED
        DRAFTED             -> RESOURCES_PROCESSED | PUBLISHED | CLEANED_UP
        PUBLISHED           -> CLEANED_UP
        CLEANED_UP          -> (terminal)
        FAILED              -> (terminal)

    Every non-terminal stage may also move to ``FAILED``.  The
    ``DRAFTED -> RESOURCES_PROCESSED`` edge serves platforms that need a
    draft id before images can be uploaded.

    Parameters
    ----------
    platform:
        Canonical platform key of the adapter.
    content_id:
        Identifier of the document being published.
    stage:
        Starting stage; attempts on an initialised adapter start at
        ``INITIALIZED``.
    """

    VALID_TRANSITIONS: dict[AdapterStage, set[AdapterStage]] = {
        AdapterStage.UNINITIALIZED: {AdapterStage.INITIALIZED},
        AdapterStage.INITIALIZED: {AdapterStage.TRANSFORMED},
        AdapterStage.TRANSFORMED: {
            AdapterStage.RESOURCES_PROCESSED,
            AdapterStage.DRAFTED,
        },
        AdapterStage.RESOURCES_PROCESSED: {AdapterStage.DRAFTED},
        AdapterStage.DRAFTED: {
            AdapterStage.RESOURCES_PROCESSED,
            AdapterStage.PUBLISHED,
            AdapterStage.CLEANED_UP,
        },
        AdapterStage.PUBLISHED: {AdapterStage.CLEANED_UP},
        AdapterStage.CLEANED_UP: set(),
        AdapterStage.FAILED: set(),
    }

    def __init__(
        self,
        platform: str,
        content_id: str,
        stage: AdapterStage = AdapterStage.INITIALIZED,
    ) -> None:
        self.platform = platform
        self.content_id = content_id
        self.stage = stage
        self.history: list[AdapterStage] = [stage]

    @property
    def is_terminal(self) -> bool:
        return not self.VALID_TRANSITIONS[self.stage]

    def transition(self, new_state: AdapterStage) -> None:
        """Move to *new_state*.

        Raises
        ------
        ValueError
            If the transition is not allowed from the current stage.
        """
        allowed = set(self.VALID_TRANSITIONS.get(self.stage, set()))
        if not self.is_terminal:
            allowed.add(AdapterStage.FAILED)

        if new_state not in allowed:
            raise ValueError(
                f"Invalid stage transition: {self.stage.value} -> {new_state.value} "
                f"for {self.platform} content {self.content_id}. "
                f"Allowed transitions from {self.stage.value}: "
                f"{{{', '.join(sorted(s.value for s in allowed))}}}"
            )

        self.stage = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        """Mark the attempt failed unless it already reached a terminal stage."""
        if not self.is_terminal:
            self.transition(AdapterStage.FAILED)
