"""Error handling helpers shared by the pipeline stages."""

import functools
from typing import Any, Awaitable, Callable, Dict, List, Type, TypeVar

from .exceptions import APIError, PortraitPipelineError
from .logging_config import get_logger

T = TypeVar("T")


def with_error_handling(
    default: Type[PortraitPipelineError] = APIError,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Wrap a coroutine function with standardized error classification.

    Classified pipeline errors propagate unchanged. Anything else is logged
    with its traceback and re-raised as ``default`` so every stage failure
    reaches the caller as a classified error.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            logger = get_logger(func.__module__.rsplit(".", 1)[-1])
            try:
                return await func(*args, **kwargs)
            except PortraitPipelineError as exc:
                logger.error(f"'{func.__name__}' failed: {exc}")
                raise
            except Exception as exc:
                logger.error(f"Unhandled error in '{func.__name__}': {exc}", exc_info=True)
                raise default(f"{func.__name__}: {exc}") from exc

        return wrapper

    return decorator


class BatchOperationContextManager:
    """
    Context manager for fan-in operations to collect and summarize failures.
    """

    def __init__(self, operation_name: str = "Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.logger = get_logger("batch")

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.debug(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i + 1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")

        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item") -> None:
        """Report a failure for a single item of the batch."""
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}"
        )

    @property
    def messages(self) -> List[str]:
        return [detail["error"] for detail in self.errors]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
