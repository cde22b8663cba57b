"""Receipt ingestion: image upload, OCR and parsing into an expense draft."""

from receipt_insights.agents.base import BaseReceiptParser
from receipt_insights.core.models import ScannedReceipt
from receipt_insights.core.utils import get_logger
from receipt_insights.services.ocr_client import OCRClient
from receipt_insights.services.receipt_storage import ReceiptImageStorage

logger = get_logger("receipt-insights.ingestion")


class ReceiptIngestionService:
    """Wires storage, OCR and the receipt parser together."""

    def __init__(self, storage: ReceiptImageStorage, ocr: OCRClient, parser: BaseReceiptParser) -> None:
        """Initialize the service with its collaborators."""
        self.storage = storage
        self.ocr = ocr
        self.parser = parser

    def scan(self, image: bytes, owner_id: str) -> ScannedReceipt:
        """Upload the image, run OCR and parse the text. Nothing is saved."""
        key, url = self.storage.upload_image(image)
        text = self.ocr.extract_text(url)
        draft = self.parser.parse_receipt(text, owner_id)
        logger.info(f"Scanned receipt {key}: draft {draft.id} amount={draft.amount} category={draft.category}")
        return ScannedReceipt(image_key=key, image_url=url, draft=draft)

