"""Transaction extraction and item normalization endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from soko.core.config import get_settings
from soko.services.ai.transaction_extract.confirmation import generate_confirmation
from soko.services.ai.transaction_extract.contracts import ExtractedTransaction
from soko.services.ai.transaction_extract.language import coerce_language
from soko.services.ai.transaction_extract.service import extract_transaction_data
from soko.services.item_normalizer import get_item_variations, normalize_item_names

router = APIRouter()


# --- Transaction extract ---


class ExtractTransactionRequest(BaseModel):
    text: str = ""
    language: str | None = None
    override_provider: str | None = None
    override_model: str | None = None


class ExtractTransactionResponse(BaseModel):
    language: str
    transaction: ExtractedTransaction
    confirmation: str
    requires_confirmation: bool


@router.post(
    "/transactions/extract",
    response_model=ExtractTransactionResponse,
    summary="Extract a structured transaction from a trader's message",
)
async def extract_transaction_endpoint(body: ExtractTransactionRequest):
    settings = get_settings()
    if len(body.text) > settings.max_message_length:
        raise HTTPException(422, f"Message longer than {settings.max_message_length} characters")

    language = coerce_language(body.language, body.text)
    transaction = await extract_transaction_data(
        body.text,
        language,
        override_provider=body.override_provider,
        override_model=body.override_model,
    )

    return ExtractTransactionResponse(
        language=language.value,
        transaction=transaction,
        confirmation=generate_confirmation(transaction, language),
        requires_confirmation=transaction.requires_confirmation(settings.extract_confirmation_threshold),
    )


# --- Item names ---


class NormalizeItemsRequest(BaseModel):
    names: list[str] = Field(default_factory=list, max_length=200)


class NormalizeItemsResponse(BaseModel):
    names: list[str]


class ItemVariationsResponse(BaseModel):
    name: str
    variations: list[str]


@router.post("/items/normalize", response_model=NormalizeItemsResponse)
def normalize_items_endpoint(body: NormalizeItemsRequest):
    return NormalizeItemsResponse(names=normalize_item_names(body.names))


@router.get("/items/variations", response_model=ItemVariationsResponse)
def item_variations_endpoint(name: str = Query(..., min_length=1, max_length=200)):
    return ItemVariationsResponse(name=name, variations=get_item_variations(name))
