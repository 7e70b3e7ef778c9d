"""Pydantic request bodies. JSON field names are camelCase; attributes are snake_case."""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, RootModel


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class DocumentMetadataUpdate(RequestModel):
    op: Literal["document-metadata-update"]
    name: Optional[str] = None
    category: Optional[str] = None


class FolderCreate(RequestModel):
    name: str = Field(min_length=1)
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    icon: Optional[str] = None
    color: Optional[str] = None


class FolderRename(RequestModel):
    name: str = Field(min_length=1)


class AccessObjectCreate(RequestModel):
    name: str = Field(min_length=1)
    pin: str = Field(pattern=r"^\d{4}$")
    document_ids: List[str] = Field(default_factory=list, alias="documentIds")


class AccessObjectRename(RequestModel):
    op: Literal["access-object-rename"]
    name: str = Field(min_length=1)


class AccessObjectRelink(RequestModel):
    op: Literal["access-object-relink"]
    document_ids: List[str] = Field(alias="documentIds")


AccessObjectUpdate = Annotated[Union[AccessObjectRename, AccessObjectRelink], Field(discriminator="op")]


class AccessObjectUpdateBody(RootModel[AccessObjectUpdate]):
    pass


class PinVerifyRequest(RequestModel):
    access_object_id: str = Field(alias="accessObjectId")
    pin: str


class CardFields(RequestModel):
    """Card create/update body; required-field checks happen in CardService."""

    name: Optional[str] = None
    number: Optional[str] = Field(default=None, validation_alias=AliasChoices("number", "numberCiphertext"))
    expiry_date: Optional[str] = Field(default=None, alias="expiryDate")
    cvv: Optional[str] = Field(default=None, validation_alias=AliasChoices("cvv", "cvvCiphertext"))
    holder_name: Optional[str] = Field(default=None, alias="holderName")
    card_type: Optional[str] = Field(default=None, alias="type")
    color: Optional[str] = None
    bank_name: Optional[str] = Field(default=None, alias="bankName")
    number_hmac: Optional[str] = Field(default=None, alias="numberHmac")
    cvv_hmac: Optional[str] = Field(default=None, alias="cvvHmac")

    def to_fields(self) -> dict:
        return self.model_dump(exclude_none=True)


class CheckUserRequest(RequestModel):
    mobile: str


class SignupRequest(RequestModel):
    key: str
    name: str
