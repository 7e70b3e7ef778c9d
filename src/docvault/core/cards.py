"""
Payment cards. Number and CVV arrive encrypted by the client with an HMAC
over each ciphertext; nothing is persisted unless both signatures check out.
"""

import logging
import re
from typing import List, Optional

from .exceptions import CryptoFailure, IntegrityError, NotFoundError, ValidationError
from .models import CardRecord
from ..database.models import CardModel
from ..security.crypto import LegacyFieldCipher
from ..security.integrity import IntegrityGuard

EXPIRY_RE = re.compile(r"^\d{2}/\d{2}$")

REQUIRED_FIELDS = (
    ("name", "Card name is required"),
    ("number", "Card number is required"),
    ("expiry_date", "Expiry date is required"),
    ("cvv", "CVV is required"),
    ("holder_name", "Holder name is required"),
)

# fields that may be changed through update(); sensitive ones need a signature
UPDATABLE_FIELDS = ("name", "number", "expiry_date", "cvv", "holder_name", "card_type", "color", "bank_name")
SIGNED_FIELDS = {"number": ("number_hmac", "Card number tampered"), "cvv": ("cvv_hmac", "CVV tampered")}

logger = logging.getLogger(__name__)


class CardService:
    def __init__(self, db, guard: IntegrityGuard, field_cipher: Optional[LegacyFieldCipher] = None):
        self.cards = CardModel(db)
        self.guard = guard
        self.field_cipher = field_cipher

    def create(self, owner_id: str, data: dict) -> CardRecord:
        """Validate and persist a card from snake_case fields (see REQUIRED_FIELDS)."""
        for field, message in REQUIRED_FIELDS:
            if not data.get(field):
                raise ValidationError(message)

        if not data.get("number_hmac") or not data.get("cvv_hmac"):
            raise ValidationError("Integrity check failed: Missing signature")
        if not self.guard.verify(data["number"], data["number_hmac"]):
            raise IntegrityError("Integrity check failed: Card number tampered")
        if not self.guard.verify(data["cvv"], data["cvv_hmac"]):
            raise IntegrityError("Integrity check failed: CVV tampered")

        if not EXPIRY_RE.match(data["expiry_date"]):
            raise ValidationError("Invalid expiry date format (MM/YY)")

        card = CardRecord(
            owner_id=owner_id,
            name=data["name"],
            number=data["number"],
            expiry_date=data["expiry_date"],
            cvv=data["cvv"],
            holder_name=data["holder_name"],
            card_type=data.get("card_type"),
            color=data.get("color"),
            bank_name=data.get("bank_name"),
        )
        self.cards.create(card)
        logger.info("Created card %s", card.card_id)
        return card

    def list(self, owner_id: str) -> List[CardRecord]:
        return self.cards.list_by_owner(owner_id)

    def masked_view(self, card: CardRecord) -> dict:
        """Card dict with the number replaced by its last four digits and the CVV hidden."""
        view = card.to_dict()
        view["cvv"] = "•••"
        if self.field_cipher is None:
            view["number"] = "••••"
            return view
        try:
            view["number"] = self.field_cipher.mask(card.number)
        except CryptoFailure as e:
            logger.warning("Could not mask card %s: %s", card.card_id, e)
            view["number"] = "••••"
        return view

    def update(self, owner_id: str, card_id: str, changes: dict) -> CardRecord:
        updates = {k: changes[k] for k in UPDATABLE_FIELDS if changes.get(k)}

        for field, (hmac_field, message) in SIGNED_FIELDS.items():
            if field in updates and not self.guard.verify(updates[field], changes.get(hmac_field)):
                raise IntegrityError(f"Integrity check failed: {message}")

        if "expiry_date" in updates and not EXPIRY_RE.match(updates["expiry_date"]):
            raise ValidationError("Invalid expiry date format (MM/YY)")
        if not updates:
            raise ValidationError("No valid fields to update")

        if not self.cards.update_fields(owner_id, card_id, updates):
            raise NotFoundError("Card not found")
        return self.cards.get(owner_id, card_id)

    def delete(self, owner_id: str, card_id: str) -> None:
        # deleting a card that is already gone is fine
        if self.cards.delete(owner_id, card_id):
            logger.info("Deleted card %s", card_id)
