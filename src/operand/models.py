"""Pydantic v2 models for the Operand REST (v3) API.

Wire names are camelCase; Python attributes are snake_case and either name
is accepted on construction.  Object metadata is carried raw on
:class:`Object` and decoded on demand by :func:`parse_metadata`, which
dispatches on the object's type tag.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from operand.exceptions import DecodeError
from operand.wait import LifecycleState


class APIModel(BaseModel):
    """Base for every request and response shape."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Objects
# ---------------------------------------------------------------------------


class ObjectType(str, Enum):
    """Supported object types."""

    COLLECTION = "collection"
    TEXT = "text"
    HTML = "html"
    MARKDOWN = "markdown"
    PDF = "pdf"
    IMAGE = "image"
    GITHUB_REPOSITORY = "github_repository"
    EPUB = "epub"
    AUDIO = "audio"
    RSS = "rss"
    NOTION = "notion"
    MBOX = "mbox"
    EMAIL = "email"
    NOTION_PAGE = "notion_page"


class IndexingStatus(str, Enum):
    """Indexing state reported by the service for an object."""

    INDEXING = "indexing"
    READY = "ready"
    ERROR = "error"


_LIFECYCLE_BY_STATUS: dict[IndexingStatus, LifecycleState] = {
    IndexingStatus.INDEXING: LifecycleState.PENDING,
    IndexingStatus.READY: LifecycleState.READY,
    IndexingStatus.ERROR: LifecycleState.FAILED,
}


class CollectionMetadata(APIModel):
    """A collection has no metadata; it only parents other objects."""


class TextMetadata(APIModel):
    text: str


class HTMLMetadata(APIModel):
    html: str | None = None
    title: str | None = None
    url: str | None = None


class MarkdownMetadata(APIModel):
    markdown: str
    title: str | None = None


class PDFMetadata(APIModel):
    url: str = Field(alias="pdfUrl")


class ImageMetadata(APIModel):
    url: str = Field(alias="imageUrl")


class GitHubRepositoryMetadata(APIModel):
    access_token: str
    repo_owner: str
    repo_name: str
    root_path: str | None = None
    root_url: str | None = None
    ref: str | None = None


class EPUBMetadata(APIModel):
    url: str = Field(alias="epubUrl")
    title: str | None = None
    language: str | None = None


class AudioMetadata(APIModel):
    url: str = Field(alias="audioUrl")
    gcs_uri: str | None = None


class RSSMetadata(APIModel):
    url: str = Field(alias="rssUrl")


class NotionMetadata(APIModel):
    access_token: str


class MboxMetadata(APIModel):
    url: str = Field(alias="mboxUrl")


class EmailMetadata(APIModel):
    email: str
    sent: datetime | None = None
    from_: str | None = Field(default=None, alias="from")
    subject: str | None = None
    to: list[str] | None = None


class NotionPageMetadata(APIModel):
    page_id: str
    url: str
    title: str | None = None


ObjectMetadata = Union[
    CollectionMetadata,
    TextMetadata,
    HTMLMetadata,
    MarkdownMetadata,
    PDFMetadata,
    ImageMetadata,
    GitHubRepositoryMetadata,
    EPUBMetadata,
    AudioMetadata,
    RSSMetadata,
    NotionMetadata,
    MboxMetadata,
    EmailMetadata,
    NotionPageMetadata,
]

METADATA_MODELS: dict[ObjectType, type[APIModel]] = {
    ObjectType.COLLECTION: CollectionMetadata,
    ObjectType.TEXT: TextMetadata,
    ObjectType.HTML: HTMLMetadata,
    ObjectType.MARKDOWN: MarkdownMetadata,
    ObjectType.PDF: PDFMetadata,
    ObjectType.IMAGE: ImageMetadata,
    ObjectType.GITHUB_REPOSITORY: GitHubRepositoryMetadata,
    ObjectType.EPUB: EPUBMetadata,
    ObjectType.AUDIO: AudioMetadata,
    ObjectType.RSS: RSSMetadata,
    ObjectType.NOTION: NotionMetadata,
    ObjectType.MBOX: MboxMetadata,
    ObjectType.EMAIL: EmailMetadata,
    ObjectType.NOTION_PAGE: NotionPageMetadata,
}


def parse_metadata(type_tag: str, raw: dict[str, Any] | None) -> ObjectMetadata:
    """Decode raw object metadata into the model registered for *type_tag*.

    Raises:
        DecodeError: Unknown type tag, or *raw* does not fit the model.
    """
    try:
        model = METADATA_MODELS[ObjectType(type_tag)]
    except ValueError as exc:
        raise DecodeError(f"Unsupported object type: {type_tag}") from exc
    try:
        return model.model_validate(raw or {})
    except ValidationError as exc:
        raise DecodeError(f"Invalid {type_tag} metadata: {exc}") from exc


class Object(APIModel):
    """The fundamental Operand entity.

    ``type`` is kept as a plain string so objects of types newer than this
    client still decode; only :meth:`parsed_metadata` needs to know the tag.
    ``objects`` is the child count, populated only when requested via
    ``get_object(..., count=True)``.
    """

    id: str
    created_at: datetime
    updated_at: datetime
    type: str
    metadata: dict[str, Any] | None = None
    properties: dict[str, Any] | None = None
    indexing_status: IndexingStatus
    parent_id: str | None = None
    label: str | None = None
    objects: int = 0

    @property
    def lifecycle_state(self) -> LifecycleState:
        return _LIFECYCLE_BY_STATUS[self.indexing_status]

    def parsed_metadata(self) -> ObjectMetadata:
        return parse_metadata(self.type, self.metadata)


class CreateObjectArgs(APIModel):
    type: ObjectType
    metadata: Any
    parent_id: str | None = None
    properties: dict[str, Any] | None = None
    label: str | None = None


class ListObjectsArgs(APIModel):
    parent_id: str | None = None
    limit: int | None = None
    ending_before: str | None = None
    starting_after: str | None = None


class ListObjectsResponse(APIModel):
    objects: list[Object] = Field(default_factory=list)
    has_more: bool = False


class UpdateObjectArgs(APIModel):
    """Partial update: only the fields set here are changed."""

    type: ObjectType
    metadata: Any
    properties: dict[str, Any] | None = None
    label: str | None = None


class DeleteResponse(APIModel):
    deleted: bool


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    TITLE = "title"
    CONTENT = "content"
    LINK = "link"
    IMAGE = "image"
    CODE = "code"
    LIST_ITEM = "list_item"


class Content(APIModel):
    object_id: str
    content: str
    type: ContentType
    score: float


class SearchContentsArgs(APIModel):
    query: str
    parent_ids: list[str] | None = None  # omitted: search everything
    max: int | None = None
    filter: dict[str, Any] | None = None


class SearchContentsResponse(APIModel):
    id: str
    latency_ms: int = 0
    contents: list[Content] = Field(default_factory=list)
    objects: dict[str, Object] = Field(default_factory=dict)


class SearchObjectsArgs(APIModel):
    query: str
    parent_ids: list[str] | None = None
    max: int | None = None
    filter: dict[str, Any] | None = None


class SnippetObject(APIModel):
    snippet: str
    object: Object


class SearchObjectsResponse(APIModel):
    id: str
    latency_ms: int = 0
    results: list[SnippetObject] = Field(default_factory=list)


class SearchRelatedArgs(APIModel):
    object_id: str
    parent_ids: list[str] | None = None
    max: int | None = None
    filter: dict[str, Any] | None = None


class SearchRelatedResponse(APIModel):
    id: str
    latency_ms: int = 0
    objects: list[Object] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


class AnswerStyle(str, Enum):
    DIRECT = "direct"
    OPERAND = "operand"


class CompletionAnswerArgs(APIModel):
    question: str
    parent_ids: list[str] | None = None
    style: AnswerStyle | None = None
    filter: dict[str, Any] | None = None


class CompletionAnswerResponse(APIModel):
    id: str
    latency_ms: int = 0
    answer: str
    sources: list[Object] = Field(default_factory=list)


class CompletionTypeAheadArgs(APIModel):
    text: str
    parent_ids: list[str] | None = None
    count: int | None = None  # service default: 3 generations
    filter: dict[str, Any] | None = None


class CompletionTypeAheadResponse(APIModel):
    id: str
    latency_ms: int = 0
    completions: list[str] = Field(default_factory=list)
    sources: list[Object] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class CallbackKind(str, Enum):
    WEBHOOK = "webhook"


class WebhookCallbackMetadata(APIModel):
    url: str


CALLBACK_METADATA_MODELS: dict[CallbackKind, type[APIModel]] = {
    CallbackKind.WEBHOOK: WebhookCallbackMetadata,
}


class Trigger(APIModel):
    id: str
    created_at: datetime
    query: str
    filter: dict[str, Any] | None = None
    matching_threshold: float | None = None
    callback_kind: str
    callback_metadata: dict[str, Any] | None = None
    last_fired: datetime | None = None

    def parsed_callback_metadata(self) -> WebhookCallbackMetadata:
        """Decode ``callback_metadata`` according to ``callback_kind``.

        Raises:
            DecodeError: Unknown callback kind or malformed metadata.
        """
        try:
            model = CALLBACK_METADATA_MODELS[CallbackKind(self.callback_kind)]
        except ValueError as exc:
            raise DecodeError(f"Unknown callback kind: {self.callback_kind}") from exc
        try:
            return model.model_validate(self.callback_metadata or {})
        except ValidationError as exc:
            raise DecodeError(f"Invalid {self.callback_kind} callback metadata: {exc}") from exc


class CreateTriggerArgs(APIModel):
    query: str
    callback_kind: CallbackKind
    callback_metadata: Any
    filter: dict[str, Any] | None = None
    matching_threshold: float | None = None


class ListTriggersArgs(APIModel):
    limit: int | None = None
    offset: int | None = None


class ListTriggersResponse(APIModel):
    triggers: list[Trigger] = Field(default_factory=list)
    has_more: bool = False


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class FeedbackArgs(APIModel):
    """Sent when a user clicks a result of an object search."""

    search_id: str
    object_id: str
