#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
	File name: testAuditLog.py

	Description:
		Tests for AuditLog: path resolution, JSON-lines output with timestamps,
		non-JSON values, concurrent writers, and write failures that must never
		propagate to the caller.
"""

import json
import os
import tempfile
import threading
import unittest
from datetime import datetime, timezone
from unittest import mock

from cookiesession.utilities.audit_log import AuditLog


class TestAuditLog(unittest.TestCase):

	def setUp(self) -> None:
		self._tmp = tempfile.TemporaryDirectory()
		self.path = os.path.join(self._tmp.name, "audit.log")

	def tearDown(self) -> None:
		self._tmp.cleanup()

	def _lines(self) -> list:
		with open(self.path, "r", encoding="utf-8") as f:
			return [json.loads(line) for line in f]


	"""
		Each event is one JSON object per line with a leading timestamp.
	"""
	def test_event_writes_json_line(self):

		log = AuditLog(self.path)
		log.event(event="session_started", session="abcd")
		log.event(event="session_destroyed", session="abcd")

		lines = self._lines()
		self.assertEqual(["session_started", "session_destroyed"], [line["event"] for line in lines])
		self.assertEqual("abcd", lines[0]["session"])
		self.assertTrue(lines[0]["timestamp"].endswith("Z"))


	def test_non_json_values_are_stringified(self):

		moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
		AuditLog(self.path).event(event="session_expired", at=moment)

		self.assertEqual(str(moment), self._lines()[0]["at"])


	def test_path_resolution(self):

		with mock.patch.dict(os.environ, {"COOKIESESSION_AUDIT_FILE": self.path}):
			self.assertEqual(self.path, AuditLog().audit_file)
			self.assertEqual("/explicit.log", AuditLog("/explicit.log").audit_file)

		with mock.patch.dict(os.environ, {}, clear=True):
			self.assertTrue(AuditLog().audit_file.endswith("audit.log"))


	def test_concurrent_writers_do_not_interleave(self):

		log = AuditLog(self.path)

		def writer(n):
			for i in range(50):
				log.event(event="session_resumed", writer=n, i=i)

		threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
		for t in threads:
			t.start()
		for t in threads:
			t.join(timeout=10)

		self.assertEqual(200, len(self._lines()))


	"""
		An unwritable audit file is reported on stderr and never raises.
	"""
	def test_write_failure_is_swallowed(self):

		log = AuditLog(os.path.join(self._tmp.name, "missing-dir", "audit.log"))

		with mock.patch("sys.stderr") as stderr:
			log.event(event="server_exception")

		self.assertTrue(stderr.write.called)


if __name__ == "__main__":
	unittest.main()
