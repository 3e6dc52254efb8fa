import logging
import re
from typing import Dict, List, Optional

from errors import MissingReferenceError
from freeagent_client import FreeAgentClient, raise_for_upstream
from ocr_models import Counterparty


logger = logging.getLogger(__name__)

CONTACT_NAME_MAX_LENGTH = 80


def _normalize_name(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip().casefold()


def contact_display_name(contact: Dict) -> str:
    return contact.get("organisation_name") or contact.get("first_name") or ""


def find_matching_contact(contacts: List[Dict], name: str) -> Optional[Dict]:
    """Exact (case-insensitive, whitespace-collapsed) name match.

    A search hit whose name merely contains the merchant is not a match.
    """
    wanted = _normalize_name(name)
    for contact in contacts:
        if contact.get("url") and _normalize_name(contact_display_name(contact)) == wanted:
            return contact
    return None


class ContactResolver:
    """Finds or creates the FreeAgent contact a bill is raised against"""

    def __init__(self, client: FreeAgentClient, fallback_name: str = "Misc Receipts"):
        self.client = client
        self.fallback_name = fallback_name

    def resolve(self, name: Optional[str]) -> Counterparty:
        contact_name = ((name or "").strip() or self.fallback_name)[:CONTACT_NAME_MAX_LENGTH]

        search = self.client.get("contacts", params={"view": "all", "search": contact_name})
        raise_for_upstream(search, "Contact search failed")
        found = find_matching_contact(search.json().get("contacts") or [], contact_name)
        if found:
            logger.info("✅ Using existing contact '%s'", contact_display_name(found))
            return Counterparty(url=found["url"], display_name=contact_display_name(found))

        logger.info("➕ Creating contact '%s'", contact_name)
        created = self.client.post_json(
            "contacts",
            {"contact": {"organisation_name": contact_name, "first_name": contact_name}},
        )
        raise_for_upstream(created, "Create contact failed")
        contact_url = (created.json().get("contact") or {}).get("url")
        if not contact_url:
            raise MissingReferenceError(
                "No contact URL returned", details=created.text, status=created.status_code
            )
        return Counterparty(url=contact_url, display_name=contact_name)

    def resolve_current_user(self) -> Counterparty:
        """Expenses are claimed by the authenticated user rather than a contact"""
        me = self.client.get("users/me")
        raise_for_upstream(me, "Fetch current user failed")
        user = me.json().get("user") or {}
        if not user.get("url"):
            raise MissingReferenceError("No user URL returned", details=me.text, status=me.status_code)
        display_name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
        return Counterparty(url=user["url"], display_name=display_name or user.get("email", ""))
