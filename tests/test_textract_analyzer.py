import base64
import os
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from errors import OcrNoDataError, UpstreamError
from textract_analyzer import ExpenseAnalyzer, get_first, summarize_expense_document, sum_tax_fields


def summary_field(kind, text):
    return {"Type": {"Text": kind}, "ValueDetection": {"Text": text}}


def expense_document(summary, line_items=()):
    return {
        "SummaryFields": list(summary),
        "LineItemGroups": [{
            "LineItems": [
                {"LineItemExpenseFields": [summary_field("ITEM", text)]} for text in line_items
            ]
        }],
    }


def test_get_first_respects_key_order():
    summary = [summary_field("RECEIVER_NAME", "Me"), summary_field("VENDOR_NAME", "Acme Ltd")]
    assert get_first(summary, ["VENDOR_NAME", "RECEIVER_NAME"]) == "Acme Ltd"
    assert get_first(summary, ["TOTAL"]) == ""


def test_sum_tax_fields_adds_every_tax_line():
    summary = [summary_field("TAX", "£1.20"), summary_field("TAX", "0.30"), summary_field("TOTAL", "9.00")]
    assert sum_tax_fields(summary) == "1.50"
    assert sum_tax_fields([summary_field("TAX", "0.00")]) == ""


def test_summary_date_is_normalized_day_first():
    document = expense_document([
        summary_field("VENDOR_NAME", "Acme Ltd"),
        summary_field("TOTAL", "£12.50"),
        summary_field("TAX", "2.50"),
        summary_field("INVOICE_RECEIPT_DATE", "09/11/2025"),
    ])

    fields = summarize_expense_document(document)

    assert fields["merchant"] == "Acme Ltd"
    assert fields["total"] == "12.50"
    assert fields["vat_amount"] == "2.50"
    assert fields["date"] == "2025-11-09"
    assert fields["debug"] == {"date_source": "summary"}


def test_date_falls_back_to_free_text():
    document = expense_document(
        [summary_field("VENDOR_NAME", "Acme Ltd"), summary_field("TOTAL", "3.00")],
        line_items=["Paid 3 Mar 2025 card ending 1234"],
    )

    fields = summarize_expense_document(document)

    assert fields["date"] == "2025-03-03"
    assert fields["debug"]["date_source"] == "regex"
    assert "Paid 3 Mar 2025" in fields["raw_text"]


def test_missing_date_is_reported():
    fields = summarize_expense_document(expense_document([summary_field("TOTAL", "3.00")]))
    assert fields["date"] == ""
    assert fields["debug"]["date_source"] == "missing"


def test_analyze_returns_fields_and_file():
    textract = MagicMock()
    textract.analyze_expense.return_value = {"ExpenseDocuments": [
        expense_document([summary_field("VENDOR_NAME", "Acme Ltd"), summary_field("TOTAL", "4,50")])
    ]}
    analyzer = ExpenseAnalyzer(textract_client=textract)

    fields = analyzer.analyze(b"jpeg", file_name="scan.png", file_type="image/png")

    textract.analyze_expense.assert_called_once_with(Document={"Bytes": b"jpeg"})
    assert fields["total"] == "4.50"
    assert fields["file_b64"] == base64.b64encode(b"jpeg").decode("ascii")
    assert fields["file_name"] == "scan.png"
    assert fields["file_type"] == "image/png"


def test_analyze_without_documents():
    textract = MagicMock()
    textract.analyze_expense.return_value = {"ExpenseDocuments": []}

    with pytest.raises(OcrNoDataError) as excinfo:
        ExpenseAnalyzer(textract_client=textract).analyze(b"jpeg")

    assert excinfo.value.http_status == 422


def test_analyze_client_error_is_upstream():
    textract = MagicMock()
    textract.analyze_expense.side_effect = ClientError(
        {"Error": {"Code": "InvalidParameterException", "Message": "bad image"}}, "AnalyzeExpense"
    )

    with pytest.raises(UpstreamError) as excinfo:
        ExpenseAnalyzer(textract_client=textract).analyze(b"jpeg")

    assert excinfo.value.message == "Analyze failed"
    assert "bad image" in excinfo.value.details


def test_oversized_total_is_left_blank():
    fields = summarize_expense_document(expense_document([
        summary_field("VENDOR_NAME", "Acme Ltd"),
        summary_field("TOTAL", "£" + "9" * 30),
    ]))
    assert fields["total"] == ""
    assert fields["merchant"] == "Acme Ltd"
