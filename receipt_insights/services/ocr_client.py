"""OCR client: sends a receipt image URL to the OCR endpoint and returns the text."""

import requests

from receipt_insights.core.errors import OCRError
from receipt_insights.core.utils import get_logger

logger = get_logger("receipt-insights.ocr")

HTTP_200_OK = 200


class OCRClient:
    """Client for an OCR service answering ``{"text": "..."}``."""

    def __init__(self, endpoint_url: str, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        """Initialize with the endpoint URL and an optional requests session."""
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def extract_text(self, image_url: str) -> str:
        """POST the image URL and return the recognized text."""
        logger.info(f"Calling OCR endpoint {self.endpoint_url}")
        try:
            response = self._session.post(self.endpoint_url, json={"image_url": image_url}, timeout=self.timeout)
        except requests.RequestException as exc:
            msg = f"OCR API call failed: {exc}"
            logger.exception(msg)
            raise OCRError(msg) from exc
        if response.status_code != HTTP_200_OK:
            msg = f"OCR API failed with status {response.status_code}"
            raise OCRError(msg)
        try:
            text = response.json().get("text")
        except (ValueError, AttributeError) as exc:
            msg = "Invalid OCR response"
            raise OCRError(msg) from exc
        if not isinstance(text, str):
            msg = "Invalid OCR response"
            raise OCRError(msg)
        logger.info(f"OCR returned {len(text)} characters")
        return text
