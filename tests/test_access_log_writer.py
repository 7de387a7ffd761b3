import json
import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from contracts.request_record import AttemptOutcome, RequestAttempt, RequestRecord
from core.access_log_writer import StructuredLogWriter, build_sink
from fake_backends import ListHandler


def _record(**overrides):
    fields = dict(
        client_address="10.0.0.7",
        method="GET",
        path="/version?x=1",
        protocol="HTTP/1.1",
        final_status=200,
        total_duration=1.25,
        response_size=42,
        attempts=[
            RequestAttempt(backend="http://blue:8081", backend_name="blue", start_time=1.0,
                           outcome=AttemptOutcome.TIMEOUT, duration=1.0),
            RequestAttempt(backend="http://green:8082", backend_name="green", start_time=2.0,
                           outcome=AttemptOutcome.SUCCESS, duration=0.25, response_size=42,
                           status_code=200),
        ],
        served_by="http://green:8082",
        pool="green",
        release="green-v7",
        completed_at=1700000000.0,
    )
    fields.update(overrides)
    return RequestRecord(**fields)


class TestSerialize(unittest.TestCase):
    def test_fields_and_attempt_lists(self):
        data = json.loads(StructuredLogWriter.serialize(_record()))
        self.assertEqual(data["time"], "2023-11-14T22:13:20+00:00")
        self.assertEqual(data["client"], "10.0.0.7")
        self.assertEqual(data["request"], "GET /version?x=1 HTTP/1.1")
        self.assertEqual(data["status"], 200)
        self.assertEqual(data["body_bytes_sent"], 42)
        self.assertEqual(data["upstream_addr"], ["http://blue:8081", "http://green:8082"])
        self.assertEqual(data["upstream_status"], [None, 200])
        self.assertEqual(data["upstream_outcome"], ["timeout", "success"])
        self.assertEqual(data["upstream_response_time"], [1.0, 0.25])
        self.assertEqual(data["served_by"], "http://green:8082")
        self.assertEqual(data["pool"], "green")
        self.assertFalse(data["client_disconnected"])

    def test_hostile_values_stay_on_one_parseable_line(self):
        path = '/a"b\\c\nd\r\te\x00f\x1b[31m,}{'
        line = StructuredLogWriter.serialize(_record(path=path, pool='x"\n'))
        self.assertNotIn("\n", line)
        data = json.loads(line)
        self.assertEqual(data["path"], path)
        self.assertEqual(data["pool"], 'x"\n')

    def test_lone_surrogates_are_escaped(self):
        line = StructuredLogWriter.serialize(_record(path="/bad\udcff"))
        data = json.loads(line)
        self.assertEqual(data["path"], "/bad\\udcff")

    def test_exhausted_record_has_no_served_by(self):
        data = json.loads(StructuredLogWriter.serialize(
            _record(final_status=502, served_by=None, pool=None, release=None, attempts=[])
        ))
        self.assertIsNone(data["served_by"])
        self.assertEqual(data["upstream_addr"], [])


class TestStructuredLogWriter(unittest.TestCase):
    def setUp(self):
        self.sink = ListHandler()
        self.writer = StructuredLogWriter(self.sink, max_queue=2)

    def test_records_reach_sink_after_stop(self):
        self.writer.start()
        self.writer.write(_record())
        self.writer.write(_record(final_status=404))
        self.writer.stop()
        self.assertEqual(len(self.sink.lines), 2)
        self.assertEqual(json.loads(self.sink.lines[1])["status"], 404)

    def test_full_queue_drops_without_raising(self):
        # Not started, so nothing drains the queue
        for _ in range(5):
            self.writer.write(_record())
        self.assertEqual(self.writer.dropped, 3)

    def test_serialization_failure_is_swallowed(self):
        import orjson

        with patch("core.access_log_writer.orjson.dumps", side_effect=orjson.JSONEncodeError("boom")):
            self.writer.write(_record())
        self.assertEqual(self.writer.dropped, 1)

    def test_sink_failure_does_not_reach_caller(self):
        class BrokenStream:
            def write(self, data):
                raise OSError("disk full")

            def flush(self):
                pass

        class CountingHandler(logging.StreamHandler):
            errors = 0

            def handleError(self, record):
                CountingHandler.errors += 1

        writer = StructuredLogWriter(CountingHandler(BrokenStream()))
        writer.start()
        writer.write(_record())
        writer.stop()
        self.assertEqual(writer.dropped, 0)
        self.assertEqual(CountingHandler.errors, 1)


class TestBuildSink(unittest.TestCase):
    def test_file_sink_appends_lines(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "access.log")
            sink = build_sink(path)
            writer = StructuredLogWriter(sink)
            writer.start()
            writer.write(_record())
            writer.stop()
            sink.close()
            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()
            self.assertEqual(len(lines), 1)
            self.assertEqual(json.loads(lines[0])["status"], 200)

    def test_dash_means_stdout(self):
        sink = build_sink("-")
        self.assertIsInstance(sink, logging.StreamHandler)
        self.assertNotIsInstance(sink, logging.FileHandler)


if __name__ == "__main__":
    unittest.main()
