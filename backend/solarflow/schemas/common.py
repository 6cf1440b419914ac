from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator

from solarflow.core.time_utils import ensure_utc

# SQLite hands back naive datetimes; everything leaves the API as aware UTC.
UtcDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
OptionalUtcDateTime = Optional[UtcDateTime]
