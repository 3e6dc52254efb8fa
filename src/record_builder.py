from typing import Dict, Optional

from field_normalizer import format_amount
from ocr_models import Attachment, NormalizedFields, RECORD_KINDS


COLLECTIONS = {"bill": "bills", "expense": "expenses"}


def collection_path(kind: str) -> str:
    if kind not in COLLECTIONS:
        raise ValueError(f"record kind must be one of {RECORD_KINDS}, got {kind!r}")
    return COLLECTIONS[kind]


class RecordBuilder:
    """Builds the JSON body for creating a bill or an expense.

    Every record gets exactly one line with the configured default category;
    no category is inferred from the receipt.
    """

    def __init__(self, default_category: str = "/categories/280"):
        self.default_category = default_category

    def build(self, kind: str, fields: NormalizedFields, reference_url: str,
              attachment: Optional[Attachment] = None) -> Dict:
        if kind == "bill":
            body = self._bill(fields, reference_url)
        elif kind == "expense":
            body = self._expense(fields, reference_url)
        else:
            raise ValueError(f"record kind must be one of {RECORD_KINDS}, got {kind!r}")

        if attachment is not None:
            body["attachment"] = attachment.to_json()
        return {kind: body}

    def _bill(self, fields: NormalizedFields, contact_url: str) -> Dict:
        item = {
            "category": self.default_category,
            "total_value": format_amount(fields.gross_amount),
        }
        if fields.tax_amount is not None:
            item["sales_tax_value"] = format_amount(fields.tax_amount)
        return {
            "contact": contact_url,
            "dated_on": fields.dated_on,
            "due_on": fields.dated_on,
            "reference": fields.merchant_name or "Receipt",
            "bill_items": [item],
        }

    def _expense(self, fields: NormalizedFields, user_url: str) -> Dict:
        body = {
            "user": user_url,
            "dated_on": fields.dated_on,
            "description": fields.merchant_name or "Receipt",
            "category": self.default_category,
            "gross_value": format_amount(fields.gross_amount),
        }
        if fields.tax_amount is not None:
            body["sales_tax_value"] = format_amount(fields.tax_amount)
        return body
