import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import requests

from attachment_binder import AttachmentBinder, InlineRecordStrategy, strategies_for
from config_loader import Settings, load_uploader_config, strategy_order_for
from contact_resolver import ContactResolver
from errors import ConfigError, MissingReferenceError, ReceiptUploadError, ValidationError
from field_normalizer import format_amount, normalize_fields, sanitize_filename
from freeagent_client import FreeAgentClient, raise_for_upstream
from ocr_models import Attachment, AttachmentTarget, RECORD_KINDS, ReceiptFields
from record_builder import RecordBuilder, collection_path
from token_manager import FreeAgentTokenManager


logger = logging.getLogger(__name__)


class UploadStep(str, Enum):
    IDLE = "idle"
    RESOLVING_COUNTERPARTY = "resolving_counterparty"
    BUILDING_RECORD = "building_record"
    CREATING_RECORD = "creating_record"
    BINDING_ATTACHMENT = "binding_attachment"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadOutcome:
    kind: str
    step: UploadStep = UploadStep.IDLE
    failed_step: Optional[UploadStep] = None
    record: Optional[Dict] = None
    attachment_strategy: Optional[str] = None
    error: Optional[ReceiptUploadError] = None
    history: List[UploadStep] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.step == UploadStep.DONE

    def to_response(self) -> Tuple[Dict, int]:
        if self.success:
            body = {"success": True, self.kind: self.record or {}}
            if self.attachment_strategy:
                body["attachment"] = {"strategy": self.attachment_strategy}
            return body, 200
        error = self.error or ReceiptUploadError("Upload failed")
        return error.to_dict(), error.http_status


class ReceiptUploader:
    """Creates a bill or expense from a reviewed receipt and attaches the image.

    Steps run strictly in order and the first failure stops the run. A record
    that was created before a later step failed is left in FreeAgent.
    """

    def __init__(self, client: FreeAgentClient, resolver: ContactResolver,
                 builder: RecordBuilder, binder: AttachmentBinder, cfg: Optional[Dict] = None,
                 today: Optional[Callable[[], date]] = None):
        self.client = client
        self.resolver = resolver
        self.builder = builder
        self.binder = binder
        self.cfg = cfg or load_uploader_config()
        self.today = today or date.today

    def _advance(self, outcome: UploadOutcome, step: UploadStep) -> None:
        outcome.step = step
        outcome.history.append(step)
        logger.debug("[%s] %s", outcome.kind, step.value)

    def upload(self, kind: str, fields: ReceiptFields) -> UploadOutcome:
        outcome = UploadOutcome(kind=kind)
        outcome.history.append(UploadStep.IDLE)
        try:
            self._run(kind, fields, outcome)
        except ReceiptUploadError as e:
            outcome.failed_step = outcome.step
            if e.step is None and outcome.step != UploadStep.IDLE:
                e.step = outcome.step.value
            outcome.error = e
            self._advance(outcome, UploadStep.FAILED)
            logger.error("❌ %s upload failed at %s: %s", kind, outcome.failed_step.value, e.message)
        return outcome

    def _run(self, kind: str, fields: ReceiptFields, outcome: UploadOutcome) -> None:
        if kind not in RECORD_KINDS:
            raise ValidationError(f"Unknown record kind: {kind}")
        # validation happens before any network call
        normalized = normalize_fields(
            fields, today=self.today(), merchant_max_length=self.cfg.get("merchant_max_length", 80)
        )
        if not fields.file_bytes:
            raise ValidationError("Missing file_b64")

        attachment = Attachment(
            data=fields.file_bytes,
            content_type=fields.mime_type or "image/jpeg",
            file_name=fields.file_name or sanitize_filename(
                normalized.merchant_name, normalized.dated_on, format_amount(normalized.gross_amount)
            ),
        )
        try:
            strategies = strategies_for(strategy_order_for(self.cfg, kind))
        except ValueError as e:
            raise ConfigError("Invalid attachment strategy configuration", details=str(e)) from e
        inline_on_create = isinstance(strategies[0], InlineRecordStrategy) if strategies else False

        self._advance(outcome, UploadStep.RESOLVING_COUNTERPARTY)
        if kind == "bill":
            counterparty = self.resolver.resolve(normalized.merchant_name)
        else:
            counterparty = self.resolver.resolve_current_user()

        self._advance(outcome, UploadStep.BUILDING_RECORD)
        payload = self.builder.build(
            kind, normalized, counterparty.url, attachment=attachment if inline_on_create else None
        )

        self._advance(outcome, UploadStep.CREATING_RECORD)
        created = self.client.post_json(collection_path(kind), payload)
        raise_for_upstream(created, f"Create {kind} failed")
        record = created.json().get(kind) or {}
        record_url = record.get("url")
        if not record_url:
            raise MissingReferenceError(
                f"No {kind} URL returned", details=created.text, status=created.status_code
            )
        outcome.record = record
        logger.info("✅ Created %s %s", kind, record_url)

        if inline_on_create:
            outcome.attachment_strategy = InlineRecordStrategy.name
        else:
            self._advance(outcome, UploadStep.BINDING_ATTACHMENT)
            target = AttachmentTarget(kind=kind, record_url=record_url, payload=payload)
            bound = self.binder.bind(target, attachment, strategies)
            outcome.attachment_strategy = bound.strategy
            outcome.record = bound.body.get(kind) or record

        self._advance(outcome, UploadStep.DONE)

    def upload_standalone(self, fields: ReceiptFields) -> Tuple[Dict, int]:
        """Upload only the image to the attachments endpoint, no record"""
        if not fields.file_bytes:
            return ValidationError("Missing file_b64").to_dict(), 400
        attachment = Attachment(
            data=fields.file_bytes,
            content_type=fields.mime_type or "image/jpeg",
            file_name=fields.file_name or sanitize_filename(fields.merchant, fields.date, fields.total),
        )
        try:
            bound = self.binder.upload_standalone(attachment, self.cfg.get("standalone_upload_paths") or [])
        except ReceiptUploadError as e:
            logger.error("❌ Standalone upload failed: %s", e.message)
            return e.to_dict(), e.http_status
        return {"success": True, "attachment": bound.body.get("attachment") or bound.body}, 200


def build_uploader(settings: Settings, cfg: Optional[Dict] = None,
                   session: Optional[requests.Session] = None) -> ReceiptUploader:
    """Wire one uploader (and its shared token manager) from settings"""
    cfg = cfg or load_uploader_config()
    session = session or requests.Session()
    token_manager = FreeAgentTokenManager.from_settings(settings, session=session)
    client = FreeAgentClient.from_settings(settings, token_manager, session=session)
    return ReceiptUploader(
        client=client,
        resolver=ContactResolver(client, fallback_name=cfg.get("contact_fallback_name", "Misc Receipts")),
        builder=RecordBuilder(default_category=cfg.get("default_category", "/categories/280")),
        binder=AttachmentBinder(client),
        cfg=cfg,
    )
