"""
Data model for token price predictions.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Iterable, Iterator, List, Optional, Tuple

HORIZONS = ('1h', '6h', '12h', '24h')
HORIZON_LABELS = ('1 hour', '6 hours', '12 hours', '24 hours')
SENTIMENTS = ('Bearish', 'Neutral', 'Bullish')

GENERIC_CYCLE_ERROR = 'Failed to fetch data. Please try again later.'


def is_known_sentiment(label: str) -> bool:
    """Case-insensitive membership test against the sentiment labels."""
    return label.strip().lower() in {s.lower() for s in SENTIMENTS}


@dataclass(frozen=True)
class TokenRecord:
    """Current price, horizon predictions and sentiment for one token."""

    token: str
    current_price: float
    predictions: Tuple[float, ...]
    sentiment: str

    def __post_init__(self):
        if self.current_price <= 0:
            raise ValueError(f"current_price must be positive, got {self.current_price}")
        if len(self.predictions) != len(HORIZONS):
            raise ValueError(f"expected {len(HORIZONS)} predictions, got {len(self.predictions)}")
        object.__setattr__(self, 'predictions', tuple(float(p) for p in self.predictions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentPrice': self.current_price,
            'predictions': list(self.predictions),
            'sentiment': self.sentiment,
        }

    def forecast_rows(self) -> List[Dict[str, Any]]:
        """
        Per-horizon table rows.

        Returns:
            One row per horizon with the predicted price and the percent
            change against the current price
        """
        return [
            {
                'horizon': horizon,
                'label': label,
                'price': price,
                'changePercent': (price - self.current_price) / self.current_price * 100,
            }
            for horizon, label, price in zip(HORIZONS, HORIZON_LABELS, self.predictions)
        ]

    def chart_series(self) -> Dict[str, Any]:
        return {
            'label': self.token.upper(),
            'labels': ['Now', *HORIZONS],
            'data': [self.current_price, *self.predictions],
        }


class TokenDataset(Mapping):
    """Read-only, ordered mapping of token identifier to TokenRecord."""

    def __init__(self, records: Iterable[TokenRecord] = ()):
        self._records: Dict[str, TokenRecord] = {}
        for record in records:
            if record.token in self._records:
                raise ValueError(f"duplicate token {record.token!r}")
            self._records[record.token] = record

    def __getitem__(self, token: str) -> TokenRecord:
        return self._records[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"TokenDataset({list(self._records)!r})"

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {token: record.to_dict() for token, record in self._records.items()}


class CycleStatus(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    FAILED = 'failed'


@dataclass(frozen=True)
class CycleState:
    """
    Snapshot of the dashboard's fetch cycle.

    ``dataset`` is the last fully built dataset; it stays visible while a new
    cycle is loading and after a failed one.
    """

    status: CycleStatus = CycleStatus.IDLE
    dataset: Optional[TokenDataset] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'loading': self.status is CycleStatus.LOADING,
            'error': self.error,
            'tokenData': self.dataset.to_dict() if self.dataset is not None else {},
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }
