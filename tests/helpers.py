"""Small builders shared by test modules."""

from typing import Any


def op(name: str, **args: Any) -> dict[str, Any]:
    """Build a raw op envelope."""
    return {"opName": name, "args": args}


def result_id(outcome, index: int = 0) -> str:
    """Id returned by the op at ``index`` of a committed batch."""
    return outcome.results[index].result["id"]
