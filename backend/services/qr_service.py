"""
QR code rendering for family codes.
"""

import base64
import io
import qrcode


def render_qr_data_url(text: str) -> str:
    """
    Render text as a PNG QR code and return it as a data URL.

    Args:
        text: Payload to encode (a family code)

    Returns:
        "data:image/png;base64,..." string
    """
    qr = qrcode.QRCode(border=1, box_size=4)
    qr.add_data(text)
    qr.make(fit=True)
    image = qr.make_image()

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
