from __future__ import annotations

from dataclasses import dataclass

from goalgraph.util.errors import TaskError

MAX_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Immediate in-place retry, isolated per task.

    ``retries`` is the task run's counter after the failed attempt has been
    counted, so with the default ceiling a task gets three attempts in total.
    """

    max_attempts: int = MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def should_retry(self, retries: int, error: TaskError) -> bool:
        if retries >= self.max_attempts:
            return False
        return error.retryable is not False
