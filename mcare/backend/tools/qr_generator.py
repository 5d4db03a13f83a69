import base64
import io
import logging

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from ..config.config import settings

logger = logging.getLogger(__name__)


class QRGenerationError(Exception):
    """QR image could not be produced."""
    pass


def attendance_mark_url(school_id: str, base_url: str = None) -> str:
    """The link a scanner opens to mark the holder present."""
    base_url = (base_url or settings.BASE_URL).rstrip("/")
    return f"{base_url}/api/v1/attendance/mark/{school_id}"


def generate_qr_code(school_id: str, base_url: str = None) -> str:
    """
    Encodes the attendance-marking link of `school_id` as a PNG data URL.

    Raises:
        QRGenerationError: if the image could not be built.
    """
    url = attendance_mark_url(school_id, base_url)
    try:
        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=4)
        qr.add_data(url)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    except Exception as e:
        logger.error(f"QR generation failed for '{school_id}': {e}", exc_info=True)
        raise QRGenerationError(f"QR Code generation failed: {e}") from e

    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
