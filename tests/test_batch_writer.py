"""
Unit tests for chunked batch writes and partial-failure reporting
"""

import json
import os
import sys
import unittest

import polars as pl

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cloudapi.coreutils.cancel import CancellationToken
from cloudapi.coreutils.errors import Cancelled, ServerError
from cloudapi.coreutils.request import RequestDescriptor
from cloudapi.extract.api_client import ApiClient
from cloudapi.load.batch_writer import BatchWriter, ItemStatus, batch_write
from fakes import FakeClock, FakeSession, make_config, make_response, no_jitter_policy

BULK_TAGS = RequestDescriptor(
    "POST", "/organizations/{org_id}/devices/tags", expected_status=(200, 207)
)


def accept_all(call):
    count = len(json.loads(call["data"])["items"])
    return make_response(200, {"results": [{"ok": True}] * count})


class TestBatchWriter(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.session = FakeSession()
        self.client = ApiClient(
            make_config(),
            session=self.session,
            clock=self.clock,
            policy=no_jitter_policy(max_attempts=1),
        )
        self.writer = BatchWriter(self.client, BULK_TAGS)

    def test_chunks_2500_items_into_three_calls_and_survives_failed_chunk(self):
        items = [{"device_id": f"d-{i}", "tag": "fleet-a"} for i in range(2500)]
        self.session.queue_response(
            accept_all,
            make_response(503, {"message": "unavailable"}),
            accept_all,
        )

        report = self.writer.batch_write(items, chunk_size=1000)

        self.assertEqual(len(self.session.calls), 3)
        sizes = [len(self.session.json_body(i)["items"]) for i in range(3)]
        self.assertEqual(sizes, [1000, 1000, 500])

        self.assertEqual(len(report), 2500)
        self.assertEqual([r.index for r in report], list(range(2500)))
        self.assertTrue(all(r.status is ItemStatus.SUCCEEDED for r in report.results[:1000]))
        self.assertTrue(all(r.status is ItemStatus.CHUNK_FAILED for r in report.results[1000:2000]))
        self.assertTrue(all(r.status is ItemStatus.SUCCEEDED for r in report.results[2000:]))

        errors = {id(r.error) for r in report.results[1000:2000]}
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(report.results[1000].error, ServerError)
        self.assertEqual(report.chunks_sent, 3)
        self.assertEqual(report.chunks_failed, 1)
        self.assertEqual(report.succeeded, 1500)
        self.assertEqual(report.chunk_failed, 1000)

    def test_inter_chunk_delay_between_chunks_only(self):
        self.session.queue_response(accept_all, accept_all, accept_all)

        self.writer.batch_write([{"n": i} for i in range(5)], chunk_size=2)

        self.assertEqual(self.clock.sleeps, [0.5, 0.5])

    def test_item_rejections_do_not_affect_siblings(self):
        self.session.queue_response(
            make_response(
                207,
                {
                    "results": [
                        {"id": "d-1"},
                        {"error": {"code": "not_found", "message": "Device d-2 not found"}},
                        {"ok": False, "message": "tag too long"},
                    ]
                },
            ),
            make_response(200, {"results": [{"id": "d-4"}]}),
        )

        report = self.writer.batch_write(
            [{"device_id": f"d-{i}"} for i in range(1, 5)], chunk_size=3
        )

        statuses = [r.status for r in report]
        self.assertEqual(
            statuses,
            [
                ItemStatus.SUCCEEDED,
                ItemStatus.REJECTED,
                ItemStatus.REJECTED,
                ItemStatus.SUCCEEDED,
            ],
        )
        self.assertEqual(report.results[1].error, "Device d-2 not found")
        self.assertEqual(report.results[2].error, "tag too long")
        self.assertEqual(report.results[0].response, {"id": "d-1"})
        self.assertEqual(report.rejected, 2)
        self.assertFalse(report.all_succeeded)

    def test_response_without_results_marks_all_succeeded(self):
        self.session.queue_response(make_response(200))
        report = self.writer.batch_write([{"n": 1}, {"n": 2}])
        self.assertTrue(report.all_succeeded)

    def test_result_count_mismatch_fails_chunk(self):
        self.session.queue_response(make_response(200, {"results": [{"ok": True}]}))

        report = self.writer.batch_write([{"n": 1}, {"n": 2}])

        self.assertEqual(report.chunk_failed, 2)
        self.assertEqual(report.chunks_failed, 1)

    def test_chunk_size_limits(self):
        for bad in (0, 1001):
            with self.assertRaises(ValueError):
                self.writer.batch_write([{"n": 1}], chunk_size=bad)
        self.assertEqual(self.session.calls, [])

    def test_empty_input(self):
        report = self.writer.batch_write([])
        self.assertEqual(len(report), 0)
        self.assertEqual(self.session.calls, [])

    def test_dataframe_input(self):
        df = pl.DataFrame({"device_id": ["d-1", "d-2"], "tag": ["a", "b"]})
        self.session.queue_response(accept_all)

        report = self.writer.batch_write(df)

        self.assertEqual(
            self.session.json_body(0)["items"],
            [{"device_id": "d-1", "tag": "a"}, {"device_id": "d-2", "tag": "b"}],
        )
        self.assertTrue(report.all_succeeded)

    def test_descriptor_body_is_merged(self):
        writer = BatchWriter(
            self.client,
            RequestDescriptor("POST", BULK_TAGS.path, body={"mode": "replace"}),
        )
        self.session.queue_response(accept_all)

        writer.batch_write([{"n": 1}])

        self.assertEqual(self.session.json_body(0), {"mode": "replace", "items": [{"n": 1}]})

    def test_cancel_aborts_batch(self):
        cancel = CancellationToken(clock=self.clock)
        self.clock.on_sleep = lambda seconds: cancel.cancel()
        self.session.queue_response(accept_all, accept_all)

        with self.assertRaises(Cancelled):
            self.writer.batch_write([{"n": 1}, {"n": 2}], chunk_size=1, cancel=cancel)

        self.assertEqual(len(self.session.calls), 1)

    def test_to_frame(self):
        self.session.queue_response(
            make_response(200, {"results": [{"ok": True}, {"error": "duplicate"}]})
        )

        frame = self.writer.batch_write([{"n": 1}, {"n": 2}]).to_frame()

        self.assertEqual(frame.columns, ["index", "status", "error"])
        self.assertEqual(frame["status"].to_list(), ["succeeded", "rejected"])
        self.assertEqual(frame["error"].to_list(), [None, "duplicate"])

    def test_convenience_function(self):
        self.session.queue_response(accept_all)
        report = batch_write(self.client, BULK_TAGS, [{"n": 1}])
        self.assertEqual(report.succeeded, 1)


if __name__ == "__main__":
    unittest.main()
