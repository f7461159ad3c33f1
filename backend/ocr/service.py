from google.cloud import vision
import google.auth.exceptions
import logging

import schemas
from exceptions import ExtractionFailed
from ocr.parser import parse_bill

logger = logging.getLogger(__name__)


class OCRService:
    """
    Google Cloud Vision OCR text extraction.

    Created once per process by the get_ocr_service dependency and reused
    for all requests; tests override that dependency with a fake.
    """

    def __init__(self, client=None):
        """Initialize the Google Cloud Vision client unless one is supplied."""
        if client is not None:
            self.client = client
            return
        try:
            self.client = vision.ImageAnnotatorClient()
        except google.auth.exceptions.DefaultCredentialsError:
            logger.warning("Google Cloud Credentials not found. OCR service will not work.")
            self.client = None

    def extract_text(self, image_bytes: bytes):
        """
        Extract text from image using Google Cloud Vision.

        Args:
            image_bytes: Raw image bytes (JPEG, PNG, WebP)

        Returns:
            AnnotateImageResponse with text_annotations list.
            First annotation contains full text, subsequent ones are individual words.

        Raises:
            ExtractionFailed: client is not initialized or Vision reports an error
        """
        if not self.client:
            raise ExtractionFailed("OCR service is not available (missing credentials)")

        image = vision.Image(content=image_bytes)
        response = self.client.text_detection(image=image)

        if response.error.message:
            logger.error(f"Vision API error: {response.error.message}")
            raise ExtractionFailed(f"Vision API error: {response.error.message}")

        return response

    def extract(self, image_bytes: bytes, currency: str) -> schemas.ExtractedBill:
        """Run OCR on a bill photo and parse it into structured bill data."""
        response = self.extract_text(image_bytes)
        bill = parse_bill(response, currency)
        logger.info(f"Extracted {len(bill.items)} item(s) from receipt, total {bill.total} {currency}")
        return bill
