from __future__ import annotations

import unittest

from flask import Flask, request

from mindsync.utils.ip import get_client_ip


class ClientIpTests(unittest.TestCase):
    def setUp(self) -> None:
        self.app = Flask(__name__)

    def _ip(self, headers: dict | None = None, remote_addr: str = "10.0.0.1") -> str | None:
        with self.app.test_request_context(headers=headers or {}, environ_base={"REMOTE_ADDR": remote_addr}):
            return get_client_ip(request)

    def test_cloudflare_header_wins(self) -> None:
        ip = self._ip({"CF-Connecting-IP": " 1.1.1.1 ", "X-Real-IP": "2.2.2.2"})
        self.assertEqual(ip, "1.1.1.1")

    def test_forwarded_for_uses_left_most(self) -> None:
        self.assertEqual(self._ip({"X-Forwarded-For": "3.3.3.3, 10.0.0.2"}), "3.3.3.3")

    def test_falls_back_to_remote_addr(self) -> None:
        self.assertEqual(self._ip(), "10.0.0.1")


if __name__ == "__main__":
    unittest.main()
