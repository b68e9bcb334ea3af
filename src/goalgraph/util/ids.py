from datetime import datetime
from secrets import token_hex


def new_execution_id(started: datetime) -> str:
    """``YYYYMMDD_HHMMSS_<6 hex>``; sortable by start time, safe as a directory name."""
    return f"{started:%Y%m%d_%H%M%S}_{token_hex(3)}"


def new_task_id() -> str:
    return f"task_{token_hex(4)}"
