import base64
import logging
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from errors import OcrNoDataError, UpstreamError
from field_normalizer import (
    extract_date_from_free_text,
    format_amount,
    normalize_amount,
    normalize_date,
)


logger = logging.getLogger(__name__)

MERCHANT_KEYS = ["VENDOR_NAME", "MERCHANT_NAME", "RECEIVER_NAME", "BUYER_NAME"]
TOTAL_KEYS = ["TOTAL", "AMOUNT_DUE", "SUBTOTAL"]
TAX_KEYS = ["TAX", "VAT_AMOUNT"]
DATE_KEYS = [
    "INVOICE_RECEIPT_DATE",
    "INVOICE_DATE",
    "RECEIPT_DATE",
    "TRANSACTION_DATE",
    "PURCHASE_DATE",
    "ORDER_DATE",
    "DATE",
]


def _field_type(field: Dict) -> str:
    return ((field or {}).get("Type") or {}).get("Text") or ""


def _field_value(field: Dict) -> str:
    return (((field or {}).get("ValueDetection") or {}).get("Text") or "").strip()


def get_first(summary: List[Dict], keys: List[str]) -> str:
    """Value of the first summary field whose type matches, in key order"""
    for key in keys:
        for field in summary:
            if _field_type(field) == key:
                value = _field_value(field)
                if value:
                    return value
    return ""


def sum_tax_fields(summary: List[Dict]) -> str:
    total = None
    for field in summary:
        if "TAX" in _field_type(field):
            amount = normalize_amount(_field_value(field))
            if amount is not None:
                total = amount if total is None else total + amount
    if total is None or total <= 0:
        return ""
    return format_amount(total)


def build_raw_text(document: Dict) -> str:
    lines = []
    for field in document.get("SummaryFields") or []:
        value = _field_value(field)
        if value:
            lines.append(f"{_field_type(field)}: {value}")
    for group in document.get("LineItemGroups") or []:
        for item in group.get("LineItems") or []:
            for field in item.get("LineItemExpenseFields") or []:
                value = _field_value(field)
                if value:
                    lines.append(value)
    return "\n".join(lines)


def summarize_expense_document(document: Dict) -> Dict:
    """Pick merchant / total / VAT / date out of one ExpenseDocument"""
    summary = document.get("SummaryFields") or []

    merchant = get_first(summary, MERCHANT_KEYS)
    total_raw = get_first(summary, TOTAL_KEYS)
    vat_raw = get_first(summary, TAX_KEYS) or sum_tax_fields(summary)

    raw_text = build_raw_text(document)
    date = normalize_date(get_first(summary, DATE_KEYS))
    date_source = "summary" if date else "missing"
    if not date:
        date = extract_date_from_free_text(raw_text)
        if date:
            date_source = "regex"

    return {
        "merchant": merchant,
        "date": date or "",
        "total": format_amount(normalize_amount(total_raw)),
        "vat_amount": format_amount(normalize_amount(vat_raw)),
        "raw_text": raw_text,
        "debug": {"date_source": date_source},
    }


class ExpenseAnalyzer:
    """Reads receipts with AWS Textract AnalyzeExpense"""

    def __init__(self, region: str = "eu-west-2", textract_client=None):
        self.region = region
        self._client = textract_client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("textract", region_name=self.region)
        return self._client

    def analyze(self, image_bytes: bytes, file_name: Optional[str] = None,
                file_type: Optional[str] = None) -> Dict:
        try:
            result = self.client.analyze_expense(Document={"Bytes": image_bytes})
        except (BotoCoreError, ClientError) as e:
            logger.error("❌ Textract AnalyzeExpense failed: %s", e)
            raise UpstreamError("Analyze failed", details=str(e)) from e

        documents = result.get("ExpenseDocuments") or []
        if not documents:
            raise OcrNoDataError("No expense data found")

        fields = summarize_expense_document(documents[0])
        logger.info("🧾 Analyzed receipt: merchant='%s' total=%s date=%s (%s)",
                    fields["merchant"], fields["total"], fields["date"], fields["debug"]["date_source"])
        fields.update({
            "file_b64": base64.b64encode(image_bytes).decode("ascii"),
            "file_name": file_name or "receipt.jpg",
            "file_type": file_type or "image/jpeg",
        })
        return fields
