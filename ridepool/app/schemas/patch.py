"""
Base for partial-update payloads.
"""

from pydantic import BaseModel, model_validator
from typing import ClassVar, Tuple


class PatchModel(BaseModel):
    """
    Partial update. Omitted fields are left alone; an explicit null is
    only accepted for columns that can be cleared.
    """
    not_null_fields: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = sorted(
            field for field in self.model_fields_set
            if field in self.not_null_fields and getattr(self, field) is None
        )
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self
