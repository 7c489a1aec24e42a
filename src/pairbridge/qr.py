"""Terminal rendering of pairing QR payloads."""

import io

import qrcode
from qrcode.main import QRCode


def create_qr(data: str) -> QRCode:
    """Build a QR code for the service-issued pairing payload."""
    qr = qrcode.QRCode(
        version=None,  # Auto-size
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=1,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr


def render_terminal(data: str) -> str:
    """Render ``data`` as a QR code for terminal display.

    Returns:
        String with the QR code drawn in Unicode block characters.
    """
    output = io.StringIO()
    create_qr(data).print_ascii(out=output, invert=True)
    return output.getvalue()
