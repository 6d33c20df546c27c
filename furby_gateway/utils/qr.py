"""QR code rendering for PIX copy-and-paste payloads"""

import base64
import io
import logging

import qrcode


def render_qr_data_url(payload: str, box_size: int = 8, border: int = 1) -> str | None:
    """
    Render a payload as a PNG data URL.

    Returns:
        ``data:image/png;base64,...`` string, or None if rendering fails
    """
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=box_size,
            border=border,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    except Exception as e:
        logging.error(f"Failed to generate QR code: {e}")
        return None
