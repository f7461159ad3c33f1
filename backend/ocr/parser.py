import re
from decimal import InvalidOperation
from typing import Optional

import schemas
from exceptions import ExtractionFailed
from utils.money import Money


# Lines that are never items (case-insensitive)
NOISE_PATTERNS = [
    r'change',
    r'balance',
    r'tender',
    r'cash',
    r'credit',
    r'debit',
    r'round\s*off',
    r'\d{1,2}[-/]\d{1,2}[-/]\d{2,4}',  # Dates (DD/MM/YYYY)
    r'\d{3}[-.:]\d{3}[-.:]\d{4}',      # Phone numbers (including colon and dot)
    r'card\s*#',
    r'receipt\s*#',
    r'invoice\s*(no|#)',
    r'bill\s*(no|#)',
    r'transaction\s*#',
    r'thank\s*you',
    r'www\.',                           # URLs
    r'\.com',                           # Domain names
    r'gstin',                           # Tax registration numbers
    r'tbl\s+\d+',                       # Table numbers
]

# Summary lines, checked in order (subtotal before total)
SUMMARY_PATTERNS = [
    ('subtotal', r'sub\s*-?\s*total'),
    ('tip', r'\b(tip|gratuity|service\s*charge)\b'),
    ('tax', r'\b(tax|gst|cgst|sgst|igst|vat)\b'),
    ('total', r'\b(grand\s*total|total|amount\s*due|net\s*amount)\b'),
]

# Price detection patterns (in order of preference)
PRICE_PATTERNS = [
    r'(?:₹|\brs\.?|\binr\b|\$)\s?(\d+(?:,\d{2,3})*(?:\.\d{1,2})?)',  # ₹1,299.00 / Rs. 45 / $12.99
    r'(\d{1,3}(?:,\d{3})*\.\d{2})\s?(?:INR|USD|inr|usd)',      # 12.99 INR
    r'(?<![\d.:-])(\d{1,6}\.\d{2})(?!\d)',                    # 12.99 (not part of a longer number)
]

# Leading quantity: "2 x Burger", "2x Burger", "3 Masala Dosa"
QUANTITY_PATTERN = r'^(\d{1,3})\s*(?:[xX*@]\s*)?(?=[A-Za-z])'


def parse_bill(vision_response, currency: str) -> schemas.ExtractedBill:
    """
    Parse a Google Cloud Vision OCR response into structured bill data.

    The first meaningful line without a price is taken as the merchant name.
    Labelled lines (subtotal, tax, tip, total) fill the summary fields and
    every other line with a price becomes an item. Missing summary fields are
    derived from the items.

    Args:
        vision_response: Google Cloud Vision AnnotateImageResponse object
                        with text_annotations list
        currency: Currency to interpret prices in

    Returns:
        ExtractedBill with all amounts in minor units

    Raises:
        ExtractionFailed: no text, or no items could be found
    """
    if not vision_response or not vision_response.text_annotations:
        raise ExtractionFailed("No text found on the receipt")

    # First annotation contains the entire document text
    full_text = vision_response.text_annotations[0].description
    lines = [line.strip() for line in full_text.split('\n') if line.strip()]

    merchant_name = None
    summary = {}
    items = []

    for line in lines:
        price_match, amount = extract_price(line, currency)

        if price_match is None:
            if merchant_name is None and not is_noise_line(line) and len(clean_description(line)) >= 2:
                merchant_name = clean_description(line)
            continue

        label = summary_label(line)
        if label:
            if label == 'tax':
                # CGST + SGST style receipts list tax on several lines
                summary['tax'] = summary.get('tax', 0) + amount
            elif label not in summary:
                summary[label] = amount
            continue

        if is_noise_line(line):
            continue

        item = parse_item(line[:price_match.start()], amount)
        if item:
            items.append(item)

    if not items:
        raise ExtractionFailed("Could not find any items on the receipt")

    items_total = sum(item.unit_price * item.quantity for item in items)
    subtotal = summary.get('subtotal', items_total)
    tax = summary.get('tax', 0)
    tip = summary.get('tip', 0)
    total = summary.get('total', subtotal + tax + tip)

    return schemas.ExtractedBill(
        merchant_name=merchant_name or "Unknown Merchant",
        currency=currency,
        items=items,
        subtotal=subtotal,
        tax=tax,
        tip=tip,
        total=total,
        raw_text=full_text,
    )


def parse_item(text: str, line_amount: int) -> Optional[schemas.ExtractedItem]:
    """Turn the description part of a priced line into an item, splitting off a leading quantity."""
    quantity = 1
    match = re.match(QUANTITY_PATTERN, text.strip())
    if match:
        quantity = max(int(match.group(1)), 1)
        text = text.strip()[match.end():]

    description = clean_description(text)
    if not description or len(description) < 2 or not 0 < line_amount <= 9999999:
        return None

    # Receipts print the line total; keep the quantity only when it divides evenly
    if quantity > 1 and line_amount % quantity == 0:
        return schemas.ExtractedItem(name=description, unit_price=line_amount // quantity, quantity=quantity)
    if quantity > 1:
        description = f"{quantity} x {description}"
    return schemas.ExtractedItem(name=description, unit_price=line_amount, quantity=1)


def summary_label(text: str) -> Optional[str]:
    for label, pattern in SUMMARY_PATTERNS:
        if re.search(pattern, text, re.I):
            return label
    return None


def is_noise_line(text: str) -> bool:
    """
    Check if line matches noise patterns that should be filtered out.

    Args:
        text: Line text to check

    Returns:
        True if line should be filtered out
    """
    for pattern in NOISE_PATTERNS:
        if re.search(pattern, text, re.I):
            return True
    return False


def extract_price(text: str, currency: str) -> tuple:
    """
    Extract the right-most price on a line.

    Returns:
        Tuple of (match_object, amount_in_minor_units)
        Returns (None, None) if no price found
    """
    for pattern in PRICE_PATTERNS:
        matches = list(re.finditer(pattern, text, re.I))
        if not matches:
            continue
        match = matches[-1]
        price_str = match.group(1).replace(',', '')
        try:
            return (match, Money.from_decimal(price_str, currency).amount)
        except (InvalidOperation, ValueError):
            continue

    return (None, None)


def clean_description(text: str) -> str:
    """
    Clean and format item description.

    - Removes trailing separators and special characters
    - Removes extra whitespace
    - Title-cases for consistency
    """
    text = re.sub(r'[\s\-*:.]+$', '', text)
    text = re.sub(r'^[\s\-*:.]+', '', text)
    text = ' '.join(text.split())
    return text.strip().title()
