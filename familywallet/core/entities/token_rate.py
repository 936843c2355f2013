from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class TokenRate(BaseModel):
    """USD price sample for one contract, as stored by the ingestion job."""
    id: Optional[str] = None
    contract: str
    usd_price: float
    timestamp: datetime


class TokenPriceResult(BaseModel):
    token: str
    price: Optional[float] = None
    stored: bool = False


class IngestionOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_IN_PROGRESS = "already_in_progress"
    SOURCE_FAILURE = "source_failure"
    INTERNAL_ERROR = "internal_error"


class IngestionResult(BaseModel):
    outcome: IngestionOutcome
    results: List[TokenPriceResult] = []
    message: Optional[str] = None


class ExchangeRatePoint(BaseModel):
    time: str  # relative label, e.g. "3h"
    timestamp: datetime
    price: float
