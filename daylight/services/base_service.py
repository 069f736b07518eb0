from abc import ABC, abstractmethod
from typing import Any

from daylight.core.exceptions import AppError
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for application services.

    Provides a standardized execution flow with validation and error handling.
    """

    def __init__(self):
        self.logger = LOGGER

    async def execute(self, *args, **kwargs) -> Any:
        """Validate the input, run the service and normalize errors.

        Raises:
            AppError: Application errors pass through; anything else is wrapped
        """
        try:
            self.validate(*args, **kwargs)
            return await self.run(*args, **kwargs)
        except AppError:
            raise
        except Exception as e:
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__},
            )
            raise AppError(f"Service execution failed: {str(e)}", original_error=e) from e

    def validate(self, *args, **kwargs):
        """Validate service input. Override in subclasses.

        Raises:
            ValidationError: If input is invalid
        """
        pass

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Run the core service logic."""
        pass
