from fastapi import Query

from ..lifecycle import TaskStatus, parse_status


def parse_status_filter(status: str | None = Query(None)) -> TaskStatus | None:
    """Optional ?status= filter; empty means no filter, unknown values -> InvalidStatus."""
    if status is None or status == "":
        return None
    return parse_status(status)
