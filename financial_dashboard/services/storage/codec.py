"""
AppState document codec.

Both backends store the same camelCase document:

    {
      "bankAccounts": [{"id", "name", "initialBalance"}],
      "monthlyData": {
        "YYYY-MM": {
          "monthlySalary": number,
          "categories": [{"id", "name", "amount", "color", "icon"}],
          "expenses": [{"id", "description", "amount", "date",
                        "bankAccountId", "categoryId"}]
        }
      }
    }
"""

import json
from typing import Any, Union

from pydantic import ValidationError

from financial_dashboard.models.ledger import AppState
from financial_dashboard.services.storage.interface import SnapshotDecodeError


def state_to_document(state: AppState) -> dict[str, Any]:
    return state.model_dump(mode="json", by_alias=True)


def encode_state(state: AppState) -> str:
    return state.model_dump_json(by_alias=True)


def state_from_document(document: Any) -> AppState:
    """Validate an already-parsed document."""
    if not isinstance(document, dict):
        raise SnapshotDecodeError(
            f"Expected a JSON object, got {type(document).__name__}"
        )
    try:
        return AppState.model_validate(document)
    except ValidationError as e:
        raise SnapshotDecodeError(
            f"Document does not match the AppState schema: {e.error_count()} errors"
        ) from e


def decode_state(text: Union[str, bytes]) -> AppState:
    """
    Parse a serialized document.

    Raises:
        SnapshotDecodeError: Invalid JSON or schema mismatch
    """
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e
    return state_from_document(document)
