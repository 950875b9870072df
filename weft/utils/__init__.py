"""Utility helpers."""

from weft.utils.abort import is_aborted, race_abort, raise_if_aborted
from weft.utils.callbacks import CallbackDispatcher
from weft.utils.stream_aggregator import StreamAggregator

__all__ = ["CallbackDispatcher", "StreamAggregator", "is_aborted", "race_abort", "raise_if_aborted"]
