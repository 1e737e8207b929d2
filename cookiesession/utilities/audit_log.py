#!/usr/bin/env python3
# -*- coding: utf-8 -*-


from datetime import datetime, timezone
import json
import os
import sys
import typing
import threading

_AUDIT_FILE = os.path.join(os.path.dirname(__file__), "audit.log")


#####################################################################################################################################################################

"""
	Provides persistent structured audit logging for cookiesession.

	Each event is appended to the audit file as one JSON object per line.
	The file path is taken from the constructor, then COOKIESESSION_AUDIT_FILE,
	then the module default.
"""
class AuditLog:

	def __init__(self, audit_file: typing.Optional[str] = None):
		self._lock = threading.RLock()
		self._audit_file = audit_file or os.environ.get("COOKIESESSION_AUDIT_FILE") or _AUDIT_FILE


	@property
	def audit_file(self) -> str:
		return self._audit_file


	def event(self, **kv: typing.Any):

		# Construct ISO8601Z timestamp
		ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

		# Append timestamp to event
		record = {"timestamp": ts}
		record.update(kv)

		with self._lock:
			try:
				with open(self._audit_file, "a", encoding="utf-8") as f:
					json.dump(record, f, ensure_ascii=False, default=str)
					f.write("\n")

			except Exception as e:
				print(f"Audit log write error: {e}", file=sys.stderr)
