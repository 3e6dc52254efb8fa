import argparse
import base64
import json
import logging
import mimetypes
import os
import sys
from datetime import date
from typing import Dict, List, Optional

from dotenv import load_dotenv

from config_loader import load_settings, load_uploader_config, missing_settings
from errors import ReceiptUploadError
from field_normalizer import normalize_fields
from logging_config import setup_logging
from ocr_models import RECORD_KINDS, ReceiptFields
from receipt_uploader import build_uploader
from record_builder import RecordBuilder
from textract_analyzer import ExpenseAnalyzer

load_dotenv()

logger = logging.getLogger("receipt_uploader.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan a receipt and file it in FreeAgent")
    parser.add_argument("image", help="receipt image (jpg/png/pdf)")
    parser.add_argument("--kind", choices=RECORD_KINDS, default="bill")
    parser.add_argument("--merchant", help="override the merchant read by OCR")
    parser.add_argument("--date", help="override the date read by OCR")
    parser.add_argument("--total", help="override the total read by OCR")
    parser.add_argument("--vat", help="override the VAT read by OCR")
    parser.add_argument("--skip-ocr", action="store_true", help="do not call Textract; use the overrides only")
    parser.add_argument("--dry-run", action="store_true", help="print the record payload instead of sending it")
    return parser.parse_args(argv)


def review_fields(analyzed: Dict, args: argparse.Namespace) -> Dict:
    """Apply command line corrections on top of the OCR result"""
    reviewed = dict(analyzed)
    for key, override in (("merchant", args.merchant), ("date", args.date),
                          ("total", args.total), ("vat", args.vat)):
        if override is not None:
            reviewed[key] = override
    if "vat" not in reviewed:
        reviewed["vat"] = reviewed.get("vat_amount")
    return reviewed


def dry_run_payload(kind: str, fields: ReceiptFields, cfg: Dict) -> Dict:
    normalized = normalize_fields(fields, today=date.today())
    builder = RecordBuilder(default_category=cfg.get("default_category", "/categories/280"))
    return builder.build(kind, normalized, "(resolved at upload)")


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = parse_args(argv)
    settings = load_settings()
    cfg = load_uploader_config()

    with open(args.image, "rb") as f:
        image_bytes = f.read()
    file_name = os.path.basename(args.image)
    file_type = mimetypes.guess_type(file_name)[0] or "image/jpeg"

    if args.skip_ocr:
        analyzed = {
            "file_b64": base64.b64encode(image_bytes).decode("ascii"),
            "file_name": file_name,
            "file_type": file_type,
        }
    else:
        try:
            analyzed = ExpenseAnalyzer(region=settings.aws_region).analyze(image_bytes, file_name, file_type)
        except ReceiptUploadError as e:
            print(json.dumps(e.to_dict(), ensure_ascii=False, indent=2))
            return 1

    fields = ReceiptFields.from_payload(review_fields(analyzed, args))

    if args.dry_run or settings.dry_run:
        logger.info("*** DRY_RUN: nothing will be sent to FreeAgent ***")
        try:
            payload = dry_run_payload(args.kind, fields, cfg)
        except ReceiptUploadError as e:
            print(json.dumps(e.to_dict(), ensure_ascii=False, indent=2))
            return 1
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    missing = missing_settings(settings)
    if missing:
        logger.error("❌ Missing environment variables: %s", ", ".join(missing))
        return 1

    outcome = build_uploader(settings, cfg).upload(args.kind, fields)
    body, status = outcome.to_response()
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return 0 if status == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
