"""Shared base for wire schemas.

The bridge and the dashboard both speak camelCase JSON; models accept either
camelCase or snake_case and serialize camelCase.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
