"""
Upstream payload schemas

Every JSON document coming back from the library API is validated here
before the aggregator touches it. Two dialects are involved:

- Drupal JSON:API (`data` / `attributes` / `relationships` / `meta`) for
  books, authors, publications, categories and images.
- Legacy Drupal REST, where every field is a list of `{value, ...}` items,
  for login, authors by internal ID, user profiles and circulation views.

Optional relationships may be absent or null. Anything structurally wrong
(missing resource id, attributes of the wrong type, ...) raises
SchemaException instead of silently turning into placeholder values.
"""

from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from exceptions import SchemaException

T = TypeVar("T", bound=BaseModel)

Scalar = Union[int, float, str]


class UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def parse_payload(model: Type[T], payload: Any, what: str) -> T:
    """Validate a decoded JSON payload, failing loudly on shape drift"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise SchemaException(f"Unexpected {what} payload: {e.error_count()} validation error(s): {e}") from e


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


# ===== JSON:API =====

class TextValue(UpstreamModel):
    value: Optional[str] = None
    processed: Optional[str] = None
    format: Optional[str] = None

    def best(self) -> str:
        return self.processed or self.value or ""


class RelationshipMeta(UpstreamModel):
    drupal_internal__target_id: Optional[Scalar] = None


class ResourceIdentifier(UpstreamModel):
    type: str
    id: str
    meta: RelationshipMeta = Field(default_factory=RelationshipMeta)

    @property
    def internal_id(self) -> str:
        return _text(self.meta.drupal_internal__target_id)


class ToOneRelationship(UpstreamModel):
    data: Optional[ResourceIdentifier] = None

    @property
    def internal_id(self) -> str:
        return self.data.internal_id if self.data else ""


class ToManyRelationship(UpstreamModel):
    data: List[ResourceIdentifier] = Field(default_factory=list)

    @property
    def internal_ids(self) -> List[str]:
        return [ident.internal_id for ident in self.data if ident.internal_id]


class BookRelationships(UpstreamModel):
    uid: ToManyRelationship = Field(default_factory=ToManyRelationship)
    lmspublication: ToOneRelationship = Field(default_factory=ToOneRelationship)
    lmsbook_category: ToOneRelationship = Field(default_factory=ToOneRelationship)
    featured_image: ToOneRelationship = Field(default_factory=ToOneRelationship)


class BookAttributes(UpstreamModel):
    drupal_internal__id: Optional[int] = None
    title: Optional[str] = None
    isbn: Optional[Scalar] = None
    copies: Optional[Scalar] = None
    issued_count: Optional[Scalar] = None
    price: Optional[Scalar] = None
    details: Optional[Union[TextValue, str]] = None

    @property
    def description(self) -> str:
        if isinstance(self.details, TextValue):
            return self.details.best()
        return _text(self.details)


class BookResource(UpstreamModel):
    type: str = "lmsbook--lmsbook"
    id: str
    attributes: BookAttributes
    relationships: BookRelationships = Field(default_factory=BookRelationships)


class BookCollection(UpstreamModel):
    data: List[BookResource] = Field(default_factory=list)


class BookDocument(UpstreamModel):
    data: BookResource


class AuthorAttributes(UpstreamModel):
    drupal_internal__id: Optional[Scalar] = None
    title: Optional[str] = None
    text_long: Optional[TextValue] = None
    created: Optional[str] = None


class AuthorResource(UpstreamModel):
    id: str
    attributes: AuthorAttributes


class AuthorCollection(UpstreamModel):
    data: List[AuthorResource] = Field(default_factory=list)


class AuthorDocument(UpstreamModel):
    data: Optional[AuthorResource] = None


class PublicationAttributes(UpstreamModel):
    drupal_internal__id: Optional[Scalar] = None
    title: Optional[str] = None
    text_long: Optional[TextValue] = None


class PublicationResource(UpstreamModel):
    id: str
    attributes: PublicationAttributes


class PublicationDocument(UpstreamModel):
    data: Optional[PublicationResource] = None


class CategoryAttributes(UpstreamModel):
    drupal_internal__tid: Optional[Scalar] = None
    name: Optional[str] = None
    description: Optional[Union[TextValue, str]] = None

    @property
    def description_text(self) -> str:
        if isinstance(self.description, TextValue):
            return self.description.best()
        return _text(self.description)


class CategoryResource(UpstreamModel):
    id: str
    attributes: CategoryAttributes


class CategoryDocument(UpstreamModel):
    data: Optional[CategoryResource] = None


class CategoryCollection(UpstreamModel):
    data: List[CategoryResource] = Field(default_factory=list)


class FileUri(UpstreamModel):
    value: Optional[str] = None
    url: Optional[str] = None


class FileAttributes(UpstreamModel):
    drupal_internal__fid: Optional[int] = None
    filename: Optional[str] = None
    uri: Optional[FileUri] = None


class FileResource(UpstreamModel):
    id: Optional[str] = None
    attributes: FileAttributes


class FileDocument(UpstreamModel):
    data: Optional[FileResource] = None


# ===== Legacy REST =====

class FieldItem(UpstreamModel):
    value: Optional[Any] = None
    processed: Optional[str] = None
    target_id: Optional[Scalar] = None
    format: Optional[str] = None


FieldList = List[FieldItem]


def first_value(items: Optional[FieldList]) -> str:
    """Value of the first item in a legacy field list, '' when empty"""
    if not items:
        return ""
    return _text(items[0].value)


def first_processed(items: Optional[FieldList]) -> str:
    if not items:
        return ""
    return items[0].processed or _text(items[0].value)


class LegacyAuthor(UpstreamModel):
    id: FieldList = Field(default_factory=list)
    uuid: FieldList = Field(default_factory=list)
    title: FieldList = Field(default_factory=list)
    text_long: FieldList = Field(default_factory=list)
    created: FieldList = Field(default_factory=list)


class LegacyUserProfile(UpstreamModel):
    uid: FieldList
    uuid: FieldList = Field(default_factory=list)
    name: FieldList = Field(default_factory=list)
    mail: FieldList = Field(default_factory=list)
    timezone: FieldList = Field(default_factory=list)
    created: FieldList = Field(default_factory=list)
    changed: FieldList = Field(default_factory=list)


class CurrentUser(UpstreamModel):
    uid: Scalar
    name: str


class LoginResponse(UpstreamModel):
    current_user: CurrentUser
    csrf_token: str
    logout_token: Optional[str] = None


class CirculationRow(UpstreamModel):
    """One row of the borrowed/requested views"""
    id: Scalar
    lmsbook: Optional[str] = None
    created: Optional[str] = None
    requested_book_issued_date: Optional[str] = None
    requested_book_returned_date: Optional[str] = None


class ReservationCreated(UpstreamModel):
    id: Optional[List[FieldItem]] = None
