from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from alumni_portal.utils.dt import as_utc_aware

# SQLite returns naive datetimes; everything leaving the API is UTC-aware
UtcDatetime = Annotated[datetime, AfterValidator(as_utc_aware)]


class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
