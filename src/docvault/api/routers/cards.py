"""Card routes."""

from fastapi import APIRouter, Depends

from ..dependencies import get_card_service, get_subject_id
from ..schemas import CardFields
from ...core.cards import CardService

cards_router = APIRouter(prefix="/cards", tags=["Cards"])


@cards_router.post("")
def create_card(
    body: CardFields,
    subject_id: str = Depends(get_subject_id),
    cards: CardService = Depends(get_card_service),
) -> dict:
    card = cards.create(subject_id, body.to_fields())
    return {"status": "success", "card": card.to_dict()}


@cards_router.get("")
def list_cards(
    masked: bool = False,
    subject_id: str = Depends(get_subject_id),
    cards: CardService = Depends(get_card_service),
) -> dict:
    records = cards.list(subject_id)
    views = [cards.masked_view(c) if masked else c.to_dict() for c in records]
    return {"status": "success", "cards": views}


@cards_router.patch("/{card_id}")
def update_card(
    card_id: str,
    body: CardFields,
    subject_id: str = Depends(get_subject_id),
    cards: CardService = Depends(get_card_service),
) -> dict:
    card = cards.update(subject_id, card_id, body.to_fields())
    return {"status": "success", "card": card.to_dict()}


@cards_router.delete("/{card_id}")
def delete_card(
    card_id: str,
    subject_id: str = Depends(get_subject_id),
    cards: CardService = Depends(get_card_service),
) -> dict:
    cards.delete(subject_id, card_id)
    return {"status": "success", "message": "Card deleted"}
