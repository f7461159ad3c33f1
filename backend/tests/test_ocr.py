"""Tests for receipt parsing and the bill extraction endpoint."""

import io
import pytest
from unittest.mock import Mock
from PIL import Image

import schemas
from exceptions import ExtractionFailed
from ocr.parser import extract_price, is_noise_line, parse_bill, parse_item
from ocr.service import OCRService


class MockTextAnnotation:
    """Mock for Google Vision text annotation."""
    def __init__(self, description):
        self.description = description


class MockError:
    """Mock for Google Vision error."""
    def __init__(self, message=""):
        self.message = message


class MockAnnotateImageResponse:
    """Mock for Google Vision API response."""
    def __init__(self, text="", error_message=""):
        self.text_annotations = [MockTextAnnotation(text)] if text else []
        self.error = MockError(message=error_message)


RECEIPT_TEXT = "\n".join([
    "Spice Route",
    "12/03/2024",
    "2 x Masala Dosa 240.00",
    "Filter Coffee 60.00",
    "Paneer Tikka ₹1,299.00",
    "Subtotal 1599.00",
    "CGST 2.5% 39.98",
    "SGST 2.5% 39.98",
    "Service Charge 50.00",
    "Total 1728.96",
    "Thank you",
])


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


def test_parse_bill_extracts_items_and_summary():
    bill = parse_bill(MockAnnotateImageResponse(RECEIPT_TEXT), "INR")

    assert bill.merchant_name == "Spice Route"
    assert [(i.name, i.unit_price, i.quantity) for i in bill.items] == [
        ("Masala Dosa", 12000, 2),
        ("Filter Coffee", 6000, 1),
        ("Paneer Tikka", 129900, 1),
    ]
    assert bill.subtotal == 159900
    assert bill.tax == 7996  # CGST + SGST
    assert bill.tip == 5000
    assert bill.total == 172896
    assert bill.raw_text == RECEIPT_TEXT


def test_parse_bill_derives_missing_totals():
    bill = parse_bill(MockAnnotateImageResponse("Corner Deli\nBagel $3.50\nJuice $2.25"), "USD")
    assert bill.subtotal == 575
    assert bill.total == 575
    assert bill.currency == "USD"


def test_parse_bill_without_text_fails():
    with pytest.raises(ExtractionFailed):
        parse_bill(MockAnnotateImageResponse(""), "INR")


def test_parse_bill_without_items_fails():
    with pytest.raises(ExtractionFailed):
        parse_bill(MockAnnotateImageResponse("Just a photo\nof nothing"), "INR")


def test_quantity_kept_only_when_it_divides_line_total():
    item = parse_item("3 Lassi ", 10000)
    assert (item.name, item.unit_price, item.quantity) == ("3 x Lassi", 10000, 1)

    item = parse_item("3x Lassi ", 9000)
    assert (item.name, item.unit_price, item.quantity) == ("Lassi", 3000, 3)


def test_extract_price_uses_rightmost_amount():
    match, amount = extract_price("Rs. 45 Samosa Rs. 90", "INR")
    assert amount == 9000
    assert extract_price("No price here", "INR") == (None, None)


def test_noise_lines():
    assert is_noise_line("Cash tendered 500.00")
    assert is_noise_line("Visit www.example.com")
    assert not is_noise_line("Veg Biryani 220.00")


def test_ocr_service_uses_vision_client():
    client = Mock()
    client.text_detection.return_value = MockAnnotateImageResponse(RECEIPT_TEXT)

    bill = OCRService(client=client).extract(png_bytes(), "INR")

    assert client.text_detection.called
    assert bill.total == 172896


def test_ocr_service_reports_vision_errors():
    client = Mock()
    client.text_detection.return_value = MockAnnotateImageResponse(error_message="quota exceeded")

    with pytest.raises(ExtractionFailed):
        OCRService(client=client).extract_text(png_bytes())


def test_extract_endpoint(client, auth_headers, mock_ocr_service):
    mock_ocr_service.extract.return_value = schemas.ExtractedBill(
        merchant_name="Spice Route",
        items=[schemas.ExtractedItem(name="Masala Dosa", unit_price=12000, quantity=2)],
        subtotal=24000,
        total=24000,
    )

    response = client.post(
        "/bills/extract",
        headers=auth_headers,
        files={"file": ("receipt.png", png_bytes(), "image/png")},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["merchant_name"] == "Spice Route"
    assert data["items"][0]["quantity"] == 2
    mock_ocr_service.extract.assert_called_once()


def test_extract_endpoint_rejects_non_images(client, auth_headers, mock_ocr_service):
    response = client.post(
        "/bills/extract",
        headers=auth_headers,
        files={"file": ("receipt.jpg", b"not an image", "image/jpeg")},
    )
    assert response.status_code == 400
    mock_ocr_service.extract.assert_not_called()


def test_extract_endpoint_reports_extraction_failure(client, auth_headers, mock_ocr_service):
    mock_ocr_service.extract.side_effect = ExtractionFailed("Could not find any items on the receipt")

    response = client.post(
        "/bills/extract",
        headers=auth_headers,
        files={"file": ("receipt.png", png_bytes(), "image/png")},
    )

    assert response.status_code == 422
    assert response.json()["code"] == "extraction_failed"


def test_extract_endpoint_requires_auth(client):
    response = client.post("/bills/extract", files={"file": ("receipt.png", png_bytes(), "image/png")})
    assert response.status_code == 401
