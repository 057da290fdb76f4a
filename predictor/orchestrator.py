"""
Prediction orchestrator.

Builds a TokenDataset by walking the token collection in order. For every
token it synthesizes a current price, then asks the inference service for
horizon predictions and for a sentiment label. Either answer is replaced by
synthetic values when the call fails, so one token's upstream trouble never
stops the batch.

Calls are made strictly one after another: both calls for a token finish
before the next token's first call starts. This paces traffic against the
upstream and must not be parallelized.
"""

import logging
import math
import random
from typing import Dict, List, Optional, Sequence

from utils.monitoring import track_upstream_fallback
from .llama_client import LlamaClient, UpstreamError
from .models import (
    HORIZONS, SENTIMENTS, GENERIC_CYCLE_ERROR,
    TokenRecord, TokenDataset, is_known_sentiment,
)

logger = logging.getLogger(__name__)

PRICE_FLOOR = 100.0
PRICE_SPAN = 1000.0

# Fallback predictions stay within +/- FALLBACK_SPREAD / 2 of the current price
FALLBACK_SPREAD = 0.1

PREDICTION_SYSTEM_PROMPT = "You are a financial analyst specializing in cryptocurrency price predictions."
SENTIMENT_SYSTEM_PROMPT = "You are a financial analyst specializing in cryptocurrency market sentiment."


class PredictionParseError(ValueError):
    """Prediction text did not contain exactly four numeric values."""


class CycleError(Exception):
    """A fetch cycle was aborted; no dataset was produced."""

    def __init__(self, message: str = GENERIC_CYCLE_ERROR, token: Optional[str] = None):
        self.token = token
        super().__init__(message)


def parse_predictions(content: str, expected: int = len(HORIZONS)) -> List[float]:
    """
    Parse comma separated prices, in horizon order.

    Whitespace and a leading '$' around each value are ignored.

    Raises:
        PredictionParseError: If the count is wrong or a value is not a finite number
    """
    segments = content.split(',')
    if len(segments) != expected:
        raise PredictionParseError(f"expected {expected} values, got {len(segments)}: {content!r}")

    values = []
    for segment in segments:
        text = segment.strip().lstrip('$').strip()
        try:
            value = float(text)
        except ValueError as e:
            raise PredictionParseError(f"not a number: {segment!r}") from e
        if not math.isfinite(value):
            raise PredictionParseError(f"not a finite number: {segment!r}")
        values.append(value)
    return values


class PredictionOrchestrator:
    """Produces one complete TokenDataset per cycle."""

    def __init__(self, client: LlamaClient, tokens: Sequence[str], rng: Optional[random.Random] = None):
        """
        Initialize the orchestrator.

        Args:
            client: Chat client pointed at the gateway
            tokens: Token identifiers in display order
            rng: Random source for synthetic prices and fallbacks
        """
        if len(set(tokens)) != len(tokens):
            raise ValueError("token identifiers must be unique")
        self.client = client
        self.tokens = tuple(tokens)
        self.rng = rng or random.Random()

    def close(self) -> None:
        """Release the chat client and its pooled connections."""
        self.client.close()

    def synthesize_current_price(self) -> float:
        """Mock current price between $100 and $1100."""
        return self.rng.random() * PRICE_SPAN + PRICE_FLOOR

    def fallback_predictions(self, current_price: float) -> List[float]:
        return [
            current_price * (1 + (self.rng.random() - 0.5) * FALLBACK_SPREAD)
            for _ in HORIZONS
        ]

    def fallback_sentiment(self) -> str:
        return self.rng.choice(SENTIMENTS)

    def prediction_messages(self, current_price: float, token: str) -> List[Dict[str, str]]:
        return [
            {'role': 'system', 'content': PREDICTION_SYSTEM_PROMPT},
            {'role': 'user', 'content': (
                f"Given the current price of {token.upper()} is ${current_price}, predict the price "
                f"for 1 hour, 6 hours, 12 hours, and 24 hours from now. "
                f"Respond with only the four predicted prices, separated by commas."
            )},
        ]

    def sentiment_messages(self, token: str) -> List[Dict[str, str]]:
        return [
            {'role': 'system', 'content': SENTIMENT_SYSTEM_PROMPT},
            {'role': 'user', 'content': (
                f"What is the current market sentiment for {token.upper()}? "
                f"Respond with only one word: Bearish, Neutral, or Bullish."
            )},
        ]

    def request_predictions(self, current_price: float, token: str) -> List[float]:
        """
        Ask the model for the four horizon prices.

        Never raises for upstream or parse failures; those produce four
        values within 5% of the current price instead.

        Returns:
            Exactly four prices ordered 1h, 6h, 12h, 24h
        """
        try:
            content = self.client.chat(self.prediction_messages(current_price, token))
            return parse_predictions(content)
        except (UpstreamError, PredictionParseError) as e:
            logger.error(f"Error generating predictions for {token}: {e}")
            track_upstream_fallback('predictions', token)
            return self.fallback_predictions(current_price)

    def request_sentiment(self, token: str) -> str:
        """
        Ask the model for a one-word sentiment label.

        An answer outside Bearish/Neutral/Bullish counts as a failed call.

        Returns:
            The trimmed label, or a randomly chosen one on failure
        """
        try:
            content = self.client.chat(self.sentiment_messages(token)).strip()
            if not is_known_sentiment(content):
                raise UpstreamError(f"unexpected sentiment label {content!r}")
            return content
        except UpstreamError as e:
            logger.error(f"Error generating sentiment for {token}: {e}")
            track_upstream_fallback('sentiment', token)
            return self.fallback_sentiment()

    def build_record(self, token: str) -> TokenRecord:
        current_price = self.synthesize_current_price()
        predictions = self.request_predictions(current_price, token)
        sentiment = self.request_sentiment(token)
        return TokenRecord(
            token=token,
            current_price=current_price,
            predictions=tuple(predictions),
            sentiment=sentiment,
        )

    def run_cycle(self) -> TokenDataset:
        """
        Build a fresh dataset for every token, one token at a time.

        Returns:
            The complete dataset

        Raises:
            CycleError: If anything not covered by the per-call fallbacks fails;
                the records built so far are discarded
        """
        records = []
        for token in self.tokens:
            try:
                records.append(self.build_record(token))
            except Exception as e:
                logger.error(f"Error fetching data for {token}: {e}", exc_info=True)
                raise CycleError(token=token) from e

        dataset = TokenDataset(records)
        logger.info(f"Fetch cycle complete for {len(dataset)} tokens")
        return dataset
