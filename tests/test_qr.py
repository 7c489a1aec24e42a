"""Tests for terminal QR rendering."""

from pairbridge.qr import create_qr, render_terminal


class TestQr:
    def test_create_qr_fits_payload(self):
        qr = create_qr("2@abcdef,ghijkl,mnopqr")

        assert qr.version >= 1
        assert qr.border == 2

    def test_render_terminal(self):
        output = render_terminal("2@abcdef,ghijkl,mnopqr")

        lines = output.splitlines()
        assert len(lines) > 10
        assert any(ch in output for ch in "█▀▄")

    def test_larger_payload_larger_code(self):
        small = render_terminal("a")
        large = render_terminal("a" * 200)

        assert len(large.splitlines()) > len(small.splitlines())
