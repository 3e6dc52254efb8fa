import base64
import binascii
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from errors import ValidationError


RECORD_KINDS = ("bill", "expense")


@dataclass(frozen=True)
class ReceiptFields:
    """Fields of one scanned receipt as reviewed by the user"""
    merchant: str
    date: str
    total: str
    file_bytes: bytes
    file_name: str = ""
    mime_type: str = "image/jpeg"
    vat: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict) -> "ReceiptFields":
        # MIME-style base64 may be wrapped across lines
        file_b64 = "".join(str(payload.get("file_b64") or "").split())
        try:
            file_bytes = base64.b64decode(file_b64, validate=True) if file_b64 else b""
        except (binascii.Error, ValueError):
            raise ValidationError("Invalid file_b64")
        vat = payload.get("vat")
        if vat is None:
            vat = payload.get("vat_amount")
        return cls(
            merchant=str(payload.get("merchant") or ""),
            date=str(payload.get("date") or ""),
            total=str(payload.get("total") or ""),
            vat=str(vat) if vat not in (None, "") else None,
            file_bytes=file_bytes,
            file_name=str(payload.get("file_name") or ""),
            mime_type=str(payload.get("file_type") or "image/jpeg"),
        )


@dataclass(frozen=True)
class NormalizedFields:
    merchant_name: str
    dated_on: str
    gross_amount: Decimal
    tax_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class Counterparty:
    url: str
    display_name: str


@dataclass(frozen=True)
class Attachment:
    data: bytes
    content_type: str
    file_name: str

    @property
    def data_b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_json(self) -> Dict:
        return {
            "data": self.data_b64,
            "content_type": self.content_type,
            "file_name": self.file_name,
        }


@dataclass
class AttachmentTarget:
    """A created record that an attachment should be bound to"""
    kind: str
    record_url: str
    payload: Dict = field(default_factory=dict)


@dataclass
class BindResult:
    strategy: str
    status_code: int
    body: Dict
