"""
Transaction frames for multi-call submissions.

Each REST call to the host commits on its own, so a submission that fails
halfway has to undo what it already created. A ``TransactionFrame`` records
every entity created while it is open; ``force_rollback`` deletes them again,
newest first, and stops recording so that anything created afterwards (the
failure activity) is kept.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple

from ..exceptions import ProvegAPIError

logger = logging.getLogger(__name__)

DeleteHandler = Callable[[str, int], None]


class TransactionFrame:
    """A unit of work whose created entities can be force-rolled back."""

    def __init__(self, delete: DeleteHandler) -> None:
        self._delete = delete
        self._created: List[Tuple[str, int]] = []
        self.rolled_back: bool = False
        self.rollback_errors: List[str] = []

    @property
    def created(self) -> List[Tuple[str, int]]:
        """(entity, id) pairs registered in this frame, oldest first."""
        return list(self._created)

    def register(self, entity: str, entity_id: int) -> None:
        """
        Record a newly created entity.

        Ignored once the frame has been rolled back.
        """
        if self.rolled_back:
            return
        self._created.append((entity, int(entity_id)))
        logger.debug(f"Registered {entity} {entity_id} in transaction frame")

    def force_rollback(self) -> None:
        """
        Delete all registered entities, newest first.

        A delete that fails is logged and remembered in ``rollback_errors``;
        the remaining entities are still deleted.
        """
        if self.rolled_back:
            return
        self.rolled_back = True
        while self._created:
            entity, entity_id = self._created.pop()
            try:
                self._delete(entity, entity_id)
                logger.info(f"Rolled back {entity} {entity_id}")
            except ProvegAPIError as e:
                message = f"Failed to roll back {entity} {entity_id}: {e}"
                logger.error(message)
                self.rollback_errors.append(message)


class TransactionManager:
    """
    Stack of open transaction frames.

    Examples:
        >>> manager = TransactionManager(connector.delete)
        >>> with manager.begin() as frame:
        ...     connector.create("Contribution", **data)
        ...     frame.force_rollback()
    """

    def __init__(self, delete: DeleteHandler) -> None:
        self._delete = delete
        self._frames: List[TransactionFrame] = []

    def get_frame(self) -> Optional[TransactionFrame]:
        """
        Get the innermost open frame.

        Returns:
            The current frame, or None outside of ``begin()``
        """
        return self._frames[-1] if self._frames else None

    @contextmanager
    def begin(self) -> Iterator[TransactionFrame]:
        """Open a frame for the duration of the ``with`` block."""
        frame = TransactionFrame(self._delete)
        self._frames.append(frame)
        try:
            yield frame
        finally:
            self._frames.pop()
