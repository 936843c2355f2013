from datetime import datetime
from pydantic import BaseModel
from typing import Optional

class TradeResponse(BaseModel):
    """
    Settled token trade as stored by the trade flow.
    Read-only here; compatible with FastAPI serialisation.
    """
    id: str
    userId: str
    fromAmount: float
    fromToken: str
    toAmount: float
    toToken: str
    exchangeRate: float
    txHash: Optional[str] = None
    createdAt: datetime
    completedAt: Optional[datetime] = None
