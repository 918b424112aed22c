"""
Core interfaces for hlskit.

The resolution engine never talks to a terminal or an editor directly. It asks
a :class:`UserInterface` to choose, confirm and display things, so the same
engine can run behind a console prompt, an editor extension or a test double.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from hlskit.config.settings import ManagementMode

logger = logging.getLogger(__name__)


class UserInterface(ABC):
    """
    Abstract interface for the surface that presents resolution to a user.

    Implementations decide how prompts and messages are rendered; the engine
    only depends on the answers.
    """

    @abstractmethod
    def choose_management_mode(self) -> Optional["ManagementMode"]:
        """
        Ask how the language server should be managed.

        Called once, when the configuration does not name a mode yet.

        Returns:
            The chosen mode, or None if the user dismissed the question
        """
        pass

    @abstractmethod
    def confirm(
        self, message: str, accept_label: str = "Yes", decline_label: str = "No"
    ) -> bool:
        """
        Ask a yes/no question.

        Args:
            message: Question to show
            accept_label: Label of the accepting answer
            decline_label: Label of the declining answer

        Returns:
            True if the user accepted
        """
        pass

    @abstractmethod
    def show_warning(self, message: str) -> None:
        """Show a non-fatal problem."""
        pass

    @abstractmethod
    def show_error(self, message: str, link: Optional[str] = None) -> None:
        """
        Show a terminal failure.

        Args:
            message: Human-readable error
            link: Documentation URI to offer as an actionable link, if any
        """
        pass

    def report_progress(self, title: str, percentage: Optional[float]) -> None:
        """Show progress of a long-running step; ignored by default."""
        pass


class NonInteractiveInterface(UserInterface):
    """
    UserInterface that never prompts.

    Questions are answered from the values given at construction; messages
    are logged and kept for inspection.

    Args:
        management_mode: Answer to :meth:`choose_management_mode`
        assume_yes: Answer to every :meth:`confirm`
    """

    def __init__(
        self,
        management_mode: Optional["ManagementMode"] = None,
        assume_yes: bool = False,
    ):
        self.management_mode = management_mode
        self.assume_yes = assume_yes
        self.warnings: List[str] = []
        self.errors: List[Tuple[str, Optional[str]]] = []

    def choose_management_mode(self) -> Optional["ManagementMode"]:
        return self.management_mode

    def confirm(
        self, message: str, accept_label: str = "Yes", decline_label: str = "No"
    ) -> bool:
        logger.info(f"{message} -> {accept_label if self.assume_yes else decline_label}")
        return self.assume_yes

    def show_warning(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def show_error(self, message: str, link: Optional[str] = None) -> None:
        logger.error(message if link is None else f"{message} ({link})")
        self.errors.append((message, link))


__all__ = ["UserInterface", "NonInteractiveInterface"]
