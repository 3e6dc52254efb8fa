"""
Attaching a receipt to a FreeAgent record.

The attachment contract differs between tenants and API versions and there is
no way to ask which one applies, so the binder tries a fixed list of
strategies and keeps the first one that returns 2xx:

1. multipart_file     multipart POST /attachments, file field "file"
2. multipart_nested   multipart POST /attachments, file field "attachment[file]"
3. json_attachment    JSON POST /attachments with base64 data and the record URL
4. record_update      JSON PUT on the record with {kind: {attachment: ...}}
5. inline             JSON PUT on the record re-sending the whole record body
                      with the attachment embedded
"""

import logging
from typing import Dict, Iterable, List, Optional

from errors import AttachmentError, truncate
from freeagent_client import ApiResponse, FreeAgentClient
from ocr_models import Attachment, AttachmentTarget, BindResult


logger = logging.getLogger(__name__)


class AttachmentStrategy:
    name = ""

    def attempt(self, client: FreeAgentClient, target: Optional[AttachmentTarget],
                attachment: Attachment) -> ApiResponse:
        raise NotImplementedError


class MultipartStrategy(AttachmentStrategy):
    def __init__(self, name: str, file_field: str, link_field: Optional[str], path: str = "attachments"):
        self.name = name
        self.file_field = file_field
        self.link_field = link_field
        self.path = path

    def attempt(self, client, target, attachment):
        files = {self.file_field: (attachment.file_name, attachment.data, attachment.content_type)}
        data = {}
        if target is not None and self.link_field:
            data[self.link_field] = target.record_url
        return client.request("POST", self.path, data=data or None, files=files)


class JsonAttachmentStrategy(AttachmentStrategy):
    name = "json_attachment"

    def __init__(self, path: str = "attachments"):
        self.path = path

    def attempt(self, client, target, attachment):
        body = attachment.to_json()
        if target is not None:
            body["attachable"] = target.record_url
        return client.post_json(self.path, {"attachment": body})


class RecordUpdateStrategy(AttachmentStrategy):
    name = "record_update"

    def attempt(self, client, target, attachment):
        return client.put_json(target.record_url, {target.kind: {"attachment": attachment.to_json()}})


class InlineRecordStrategy(AttachmentStrategy):
    name = "inline"

    def attempt(self, client, target, attachment):
        record_body = dict(target.payload.get(target.kind) or {})
        record_body["attachment"] = attachment.to_json()
        return client.put_json(target.record_url, {target.kind: record_body})


def _registry() -> Dict[str, AttachmentStrategy]:
    strategies = [
        MultipartStrategy("multipart_file", "file", "attachable"),
        MultipartStrategy("multipart_nested", "attachment[file]", "attachment[attachable]"),
        JsonAttachmentStrategy(),
        RecordUpdateStrategy(),
        InlineRecordStrategy(),
    ]
    return {s.name: s for s in strategies}


STRATEGIES = _registry()


def strategies_for(names: Iterable[str]) -> List[AttachmentStrategy]:
    out = []
    for name in names:
        if name not in STRATEGIES:
            raise ValueError(f"unknown attachment strategy: {name}")
        out.append(STRATEGIES[name])
    return out


def standalone_strategies(paths: Iterable[str]) -> List[AttachmentStrategy]:
    """Every upload path crossed with both multipart field names, path first"""
    out: List[AttachmentStrategy] = []
    for path in paths:
        out.append(MultipartStrategy(f"multipart_file@{path}", "file", None, path=path))
        out.append(MultipartStrategy(f"multipart_nested@{path}", "attachment[file]", None, path=path))
    return out


class AttachmentBinder:

    def __init__(self, client: FreeAgentClient):
        self.client = client

    def bind(self, target: AttachmentTarget, attachment: Attachment,
             strategies: List[AttachmentStrategy]) -> BindResult:
        """Attach to a created record; first 2xx wins.

        AuthError and transport failures are not strategy failures and are
        raised straight away.
        """
        return self._run(target, attachment, strategies, "Attach file failed")

    def upload_standalone(self, attachment: Attachment, paths: Iterable[str]) -> BindResult:
        """Upload a receipt that is not linked to any record"""
        return self._run(None, attachment, standalone_strategies(paths), "Upload failed")

    def _run(self, target: Optional[AttachmentTarget], attachment: Attachment,
             strategies: List[AttachmentStrategy], failure_message: str) -> BindResult:
        if not strategies:
            raise AttachmentError(failure_message, details="No attachment strategies configured")

        last: Optional[ApiResponse] = None
        last_detail = ""
        for strategy in strategies:
            logger.info("📎 Trying attachment strategy '%s'", strategy.name)
            response = strategy.attempt(self.client, target, attachment)
            if response.ok:
                logger.info("✅ Attached with '%s' (%s)", strategy.name, response.status_code)
                return BindResult(strategy=strategy.name, status_code=response.status_code, body=response.json())
            logger.warning("  ✗ %s → %s: %s", strategy.name, response.status_code, response.text[:200])
            last = response
            last_detail = f"Tried {strategy.name} → {response.status_code}: {response.text}"

        raise AttachmentError(
            failure_message,
            details=truncate(last_detail),
            status=last.status_code if last is not None else None,
        )
