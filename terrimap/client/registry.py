"""Criteria known to the map client, loaded once from GET /api/v1/criteria."""

from collections.abc import Iterator, Mapping
from typing import Optional

from terrimap.models.criteria import Criterion


class CriteriaRegistry:
    """Read-only view of the enabled criteria, passed to whoever paints the map."""

    def __init__(self, criteria: Mapping[str, Criterion]):
        self._criteria = dict(criteria)

    @classmethod
    def from_payload(cls, payload: Mapping[str, dict]) -> "CriteriaRegistry":
        """Build from the criteria endpoint's JSON (camelCase, keyed by id)."""
        return cls({cid: Criterion.model_validate({"id": cid, **body}) for cid, body in payload.items()})

    def get(self, criterion_id: Optional[str]) -> Optional[Criterion]:
        if criterion_id is None:
            return None
        return self._criteria.get(criterion_id)

    def __contains__(self, criterion_id: object) -> bool:
        return criterion_id in self._criteria

    def __iter__(self) -> Iterator[Criterion]:
        return iter(self._criteria.values())

    def __len__(self) -> int:
        return len(self._criteria)
