#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testPacketHandler.py

    Description:
        Unit tests for PacketHandler request parsing (set-value and regenerate
        bodies) and success-packet construction.
"""


import unittest

from cookiesession.handlers.packet_handler import PacketHandler
from cookiesession.handlers.error_handler import SessionError, ApplicationCodes, HTTPCodes
import cookiesession.constants as CONSTANTS


class TestPacketHandler(unittest.TestCase):

    def setUp(self) -> None:
        self.packets = PacketHandler()


    def test_parse_set_value_request(self):

        self.assertEqual({"a": [1, 2]}, self.packets.parse_set_value_request({"value": {"a": [1, 2]}}))
        self.assertIsNone(self.packets.parse_set_value_request({"value": None}))


    """
        Set-value bodies must be objects with exactly one field, "value".
    """
    def test_parse_set_value_request_rejects_bad_shapes(self):

        for payload in ([1], "value", {}, {"value": 1, "extra": 2}):
            with self.assertRaises(SessionError) as ctx:
                self.packets.parse_set_value_request(payload)
            self.assertEqual(ApplicationCodes.INVALID_PACKET_STRUCTURE, ctx.exception.application_code)
            self.assertEqual(HTTPCodes.BAD_REQUEST, ctx.exception.http_code)


    def test_parse_regenerate_request(self):

        self.assertTrue(self.packets.parse_regenerate_request(None))
        self.assertTrue(self.packets.parse_regenerate_request({}))
        self.assertFalse(self.packets.parse_regenerate_request({"delete_old_session": False}))


    def test_parse_regenerate_request_rejects_bad_input(self):

        with self.assertRaises(SessionError) as ctx:
            self.packets.parse_regenerate_request({"delete_old_session": "no"})
        self.assertEqual(ApplicationCodes.INVALID_TYPE, ctx.exception.application_code)

        with self.assertRaises(SessionError) as ctx:
            self.packets.parse_regenerate_request({"keep": True})
        self.assertEqual(ApplicationCodes.INVALID_PACKET_STRUCTURE, ctx.exception.application_code)

        with self.assertRaises(SessionError):
            self.packets.parse_regenerate_request([True])


    def test_response_packets(self):

        namespace_packet = self.packets.create_namespace_response_packet("cart", {"items": [1]})
        self.assertEqual("success", namespace_packet["response_status"])
        self.assertEqual({"items": [1]}, namespace_packet["data"])
        self.assertRegex(namespace_packet["timestamp"], CONSTANTS._ISO8601Z)

        value_packet = self.packets.create_value_response_packet("cart", "items", False, None)
        self.assertEqual(("cart", "items", False, None), (value_packet["namespace"], value_packet["key"], value_packet["present"], value_packet["value"]))

        session_packet = self.packets.create_session_response_packet("Session destroyed.")
        self.assertEqual("Session destroyed.", session_packet["message"])

        with self.assertRaises(SessionError):
            self.packets.create_session_response_packet("")


if __name__ == "__main__":
    unittest.main()
