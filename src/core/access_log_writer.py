import logging
import os
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueListener
from typing import Optional

import orjson

from config.logging_config import setup_logging
from contracts.request_record import RequestRecord
from core.errors import LogSinkError

setup_logging()
logger = logging.getLogger(__name__)


def build_sink(path: str) -> logging.Handler:
    """
    Create an append-only handler for access records.

    Args:
        path (str): File path, or "-" for stdout.
    """
    if path == "-":
        handler = logging.StreamHandler(sys.stdout)
    else:
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _clean(value):
    # Lone surrogates from undecodable input would make the encoder raise
    if isinstance(value, str):
        return value.encode("utf-8", "backslashreplace").decode("utf-8")
    return value


class StructuredLogWriter:
    """
    Writes one JSON record per completed client request.

    write() never blocks the request path: records are serialized, queued and
    handed to the sink by a background QueueListener thread. Anything that goes
    wrong on the way to the sink is counted and dropped.
    """

    def __init__(self, sink: logging.Handler, max_queue: int = 10000):
        self.sink = sink
        self.dropped = 0
        self._queue: "queue.Queue[logging.LogRecord]" = queue.Queue(maxsize=max_queue)
        self._listener: Optional[QueueListener] = None

    @staticmethod
    def serialize(record: RequestRecord) -> str:
        completed_at = record.completed_at
        if completed_at is None:
            completed_at = datetime.now(timezone.utc).timestamp()
        payload = {
            "time": datetime.fromtimestamp(completed_at, timezone.utc).isoformat(),
            "client": _clean(record.client_address),
            "request": _clean(record.request_line),
            "method": _clean(record.method),
            "path": _clean(record.path),
            "protocol": _clean(record.protocol),
            "status": record.final_status,
            "request_time": round(record.total_duration, 6),
            "body_bytes_sent": record.response_size,
            "upstream_addr": [_clean(a.backend) for a in record.attempts],
            "upstream_status": [a.status_code for a in record.attempts],
            "upstream_outcome": [a.outcome.value for a in record.attempts],
            "upstream_response_time": [round(a.duration, 6) for a in record.attempts],
            "served_by": _clean(record.served_by),
            "pool": _clean(record.pool),
            "release": _clean(record.release),
            "client_disconnected": record.client_disconnected,
        }
        return orjson.dumps(payload).decode("utf-8")

    def start(self):
        if self._listener is None:
            self._listener = QueueListener(self._queue, self.sink)
            self._listener.start()
            logger.info("Access log writer started.")

    def stop(self):
        """
        Flush queued records to the sink and stop the background thread.
        """
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            self.sink.flush()
            logger.info(f"Access log writer stopped ({self.dropped} record(s) dropped).")

    def _enqueue(self, line: str):
        entry = logging.makeLogRecord({"msg": line, "levelno": logging.INFO, "levelname": "INFO"})
        try:
            self._queue.put_nowait(entry)
        except queue.Full as e:
            raise LogSinkError("access log queue is full") from e

    def write(self, record: RequestRecord):
        try:
            self._enqueue(self.serialize(record))
        except (LogSinkError, orjson.JSONEncodeError) as e:
            self.dropped += 1
            logger.warning(f"Dropped access record for {record.request_line!r}: {e}")
