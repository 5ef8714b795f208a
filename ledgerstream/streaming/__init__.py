"""Streaming ingestion engine.

Transport adapters deliver raw chunks; the controller runs them through the
frame parser into an accumulated result; the reconciler commits the outcome.
"""

from ledgerstream.streaming.controller import StreamController
from ledgerstream.streaming.parser import (
    Frame,
    decode_json_payload,
    extract_payloads,
    parse_frame,
    split_frames,
)
from ledgerstream.streaming.reconciler import SessionReconciler
from ledgerstream.streaming.transport import (
    EventSourceChannel,
    HttpPullTransport,
    IterablePullTransport,
    PullTransport,
    PushChannel,
    PushTransport,
    StreamSink,
    TransportAdapter,
)

__all__ = [
    "EventSourceChannel",
    "Frame",
    "HttpPullTransport",
    "IterablePullTransport",
    "PullTransport",
    "PushChannel",
    "PushTransport",
    "SessionReconciler",
    "StreamController",
    "StreamSink",
    "TransportAdapter",
    "decode_json_payload",
    "extract_payloads",
    "parse_frame",
    "split_frames",
]
