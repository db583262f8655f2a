"""
Library API client

One LibraryAPI instance exists per logged-in session. It talks to the
upstream Drupal site exclusively through the proxy forwarder, keeps the
session's credentials in memory, and owns the entity caches used to turn
JSON:API book resources into denormalized Book views.
"""

import base64
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlencode

import structlog

from constants import (
    BOOK_FIELDS,
    CONNECTIVITY_MESSAGE,
    DEFAULT_CATEGORIES,
    ENDPOINTS,
    FALLBACK_AUTHOR_IDS,
    INVALID_CREDENTIALS_MESSAGE,
    JSONAPI_MEDIA_TYPE,
    MAX_BOOKS_ALLOWED,
)
from entity_cache import EntityCache
from exceptions import ApiError, SchemaException, UpstreamException
from models import (
    Author,
    Book,
    BookStatus,
    BorrowedBook,
    Category,
    CirculationStatus,
    Eligibility,
    Publication,
    RequestedBook,
    Reservation,
    UNKNOWN_AUTHOR,
    UNKNOWN_PUBLISHER,
    UserProfile,
)
from proxy import ProxyForwarder
from schemas import (
    AuthorCollection,
    AuthorDocument,
    AuthorResource,
    BookAttributes,
    BookCollection,
    BookDocument,
    BookResource,
    CategoryCollection,
    CategoryDocument,
    CategoryResource,
    CirculationRow,
    FileDocument,
    LegacyAuthor,
    LegacyUserProfile,
    LoginResponse,
    PublicationDocument,
    PublicationResource,
    ReservationCreated,
    first_processed,
    first_value,
    parse_payload,
)
from utils import now_ms, now_utc, parse_upstream_date, strip_html

logger = structlog.get_logger("library_api")

NULL_CATEGORY = "NULL"
SEARCH_FIELDS = ("title", "author", "isbn", "all")

JSONAPI_HEADERS = {"Accept": JSONAPI_MEDIA_TYPE}
JSON_HEADERS = {"Accept": "application/json"}


def describe_login_error(error: Exception) -> str:
    """Map a login failure to the message shown on the login form"""
    if isinstance(error, ApiError):
        if error.status in (400, 401, 403):
            return INVALID_CREDENTIALS_MESSAGE
        if error.status == 0:
            return CONNECTIVITY_MESSAGE
        return error.message
    return str(error)


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _error_message(result_data: Any, status: int, status_text: str) -> str:
    if isinstance(result_data, dict):
        for key in ("message", "error", "details"):
            if result_data.get(key):
                return str(result_data[key])
    return f"{status} {status_text or 'Unknown error'}"


class LibraryAPI:
    """Session-scoped client for the upstream library API"""

    def __init__(self, forwarder: ProxyForwarder, settings: Dict[str, Any],
                 executor: Optional[Executor] = None):
        self.forwarder = forwarder
        self.settings = settings
        self.base_url = forwarder.base_url

        aggregator_settings = settings.get("aggregator", {})
        self.image_workers = max(1, int(aggregator_settings.get("image_workers", 8)))
        self.default_limit = int(settings.get("pagination", {}).get("default_limit", 12))

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, int(aggregator_settings.get("background_workers", 4))),
            thread_name_prefix="library-cache",
        )

        self.user: Optional[Dict[str, str]] = None
        self.csrf_token: Optional[str] = None
        self.logout_token: Optional[str] = None
        self.session_id: Optional[str] = None
        self._username: Optional[str] = None
        self._password: Optional[str] = None

        self.authors: EntityCache[Author] = EntityCache("authors", self._executor)
        self.publications: EntityCache[Publication] = EntityCache("publications", self._executor)
        self.categories: EntityCache[Category] = EntityCache("categories", self._executor)
        self.images: EntityCache[str] = EntityCache("images", self._executor)
        self.secondary_books: EntityCache[BookAttributes] = EntityCache("secondary books")

        self._authors_loaded = False
        self._authors_lock = threading.Lock()

    # ===== Transport =====

    def make_proxy_request(self, endpoint: str, method: str = "GET", headers: Optional[Dict[str, str]] = None,
                           data: Any = None) -> Any:
        """
        Relay a request through the proxy forwarder and return the decoded body.

        Raises:
            ApiError: non-2xx upstream answer (status mirrors upstream) or
                unreachable upstream (status 0)
        """
        method = method.upper()
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        if method == "POST" and self.csrf_token:
            request_headers.setdefault("X-CSRF-Token", self.csrf_token)

        logger.debug(f"Proxy request to {endpoint}", method=method)
        try:
            result = self.forwarder.forward(endpoint, method=method, headers=request_headers, data=data)
        except UpstreamException as e:
            raise ApiError(f"Request failed: {e.message}", 0) from e

        if not result.success:
            if "/user/login" in endpoint and result.status in (400, 401, 403):
                raise ApiError(INVALID_CREDENTIALS_MESSAGE, result.status)

            message = _error_message(result.data, result.status, result.status_text)
            if result.status == 404 and ("/lmsbookauthor/" in endpoint or "/lmspublication" in endpoint):
                logger.info(f"Resource not found (404): {endpoint}")
            else:
                logger.error(f"API error for {endpoint}: {message}", status=result.status)
            raise ApiError(message, result.status or 500)

        return result.data

    def _basic_auth(self) -> str:
        token = base64.b64encode(f"{self._username}:{self._password}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    @property
    def has_credentials(self) -> bool:
        return bool(self._username and self._password)

    def _require_user(self) -> str:
        if not self.has_credentials:
            raise ApiError("Authentication required", 401)
        if not self.user or not self.user.get("uid"):
            raise ApiError("User ID not available", 401)
        return self.user["uid"]

    def make_authenticated_request(self, endpoint: str, method: str = "GET", data: Any = None,
                                   headers: Optional[Dict[str, str]] = None) -> Any:
        """Request carrying the CSRF token and Basic credentials of this session"""
        if not self.csrf_token:
            raise ApiError("Not authenticated - missing CSRF token", 401)
        if not self.has_credentials:
            raise ApiError("Not authenticated - missing credentials", 401)

        request_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-CSRF-Token": self.csrf_token,
            "Authorization": self._basic_auth(),
            **(headers or {}),
        }
        try:
            return self.make_proxy_request(endpoint, method=method, headers=request_headers, data=data)
        except ApiError as e:
            if e.status in (401, 403):
                raise ApiError("Session expired. Please login again.", 401) from e
            if e.status == 404:
                raise ApiError(f"Endpoint not found: {endpoint}", 404) from e
            raise

    # ===== Authentication =====

    def login(self, username: str, password: str, session_id: str) -> LoginResponse:
        """
        Authenticate against the upstream site and keep the session tokens.

        Raises:
            ApiError: bad credentials (400/401/403), unreachable upstream (0)
                or a login answer without user id, name or CSRF token (400)
        """
        logger.info("Attempting login", username=username)
        data = self.make_proxy_request(
            f"{ENDPOINTS['LOGIN']}?_format=json",
            method="POST",
            headers=JSON_HEADERS,
            data={"name": username, "pass": password},
        )

        try:
            response = parse_payload(LoginResponse, data, "login")
        except SchemaException as e:
            raise ApiError("Invalid login response", 400) from e
        if not response.current_user.uid or not response.current_user.name or not response.csrf_token:
            raise ApiError("Invalid login response", 400)

        self.user = {"uid": str(response.current_user.uid), "name": response.current_user.name}
        self.csrf_token = response.csrf_token
        self.logout_token = response.logout_token
        self.session_id = session_id
        self._username = username
        self._password = password

        logger.info("Login successful", uid=self.user["uid"], name=self.user["name"])
        return response

    def logout(self):
        """Best-effort upstream logout, then drop credentials and every cache"""
        if self.logout_token and self.has_credentials:
            try:
                self.make_proxy_request(
                    f"{ENDPOINTS['LOGOUT']}?{urlencode({'_format': 'json', 'token': self.logout_token})}",
                    method="POST",
                    headers={**JSON_HEADERS, "Authorization": self._basic_auth()},
                )
            except ApiError as e:
                logger.warning(f"Upstream logout failed: {e.message}")

        self.user = None
        self.csrf_token = None
        self.logout_token = None
        self.session_id = None
        self._username = None
        self._password = None
        self.clear_caches()
        logger.info("Logout cleanup completed")

    def clear_caches(self):
        for cache in (self.authors, self.publications, self.categories, self.images, self.secondary_books):
            cache.clear()
        with self._authors_lock:
            self._authors_loaded = False

    def verify_session(self, session_id: Optional[str] = None) -> bool:
        if not self.csrf_token:
            logger.info("No CSRF token available for session verification")
            return False
        if session_id is not None and session_id != self.session_id:
            logger.info("Session id does not match the authenticated client")
            return False
        return True

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # ===== Entity parsing =====

    @staticmethod
    def _author_from_legacy(payload: Any) -> Author:
        legacy = parse_payload(LegacyAuthor, payload, "author")
        return Author(
            id=first_value(legacy.id),
            uuid=first_value(legacy.uuid),
            title=first_value(legacy.title),
            description=first_processed(legacy.text_long),
            created=first_value(legacy.created),
        )

    @staticmethod
    def _author_from_jsonapi(resource: AuthorResource, author_id: str = "") -> Author:
        attributes = resource.attributes
        return Author(
            id=author_id or _to_text(attributes.drupal_internal__id),
            uuid=resource.id,
            title=attributes.title or UNKNOWN_AUTHOR,
            description=attributes.text_long.best() if attributes.text_long else "",
            created=attributes.created or "",
        )

    @staticmethod
    def _publication_from_jsonapi(resource: PublicationResource) -> Publication:
        attributes = resource.attributes
        return Publication(
            id=_to_text(attributes.drupal_internal__id) or resource.id,
            title=attributes.title or UNKNOWN_PUBLISHER,
            description=attributes.text_long.best() if attributes.text_long else "",
        )

    @staticmethod
    def _category_from_jsonapi(resource: CategoryResource) -> Category:
        attributes = resource.attributes
        return Category(
            id=_to_text(attributes.drupal_internal__tid) or resource.id,
            title=attributes.name or NULL_CATEGORY,
            description=attributes.description_text,
        )

    # ===== Loaders =====

    def _fetch_author(self, author_id: str) -> Optional[Author]:
        if not self.has_credentials:
            logger.warning(f"Cannot fetch author {author_id}: no authentication")
            return None
        payload = self.make_proxy_request(
            f"{ENDPOINTS['AUTHOR_DETAILS']}/{author_id}?_format=json",
            headers={**JSON_HEADERS, "Authorization": self._basic_auth()},
        )
        if not payload:
            return None
        author = self._author_from_legacy(payload)
        author.id = author.id or str(author_id)
        return author

    def _fetch_publication(self, book_uuid: str) -> Optional[Publication]:
        payload = self.make_proxy_request(f"{ENDPOINTS['PUBLICATIONS']}/{book_uuid}/lmspublication",
                                          headers=JSONAPI_HEADERS)
        document = parse_payload(PublicationDocument, payload, "publication")
        if document.data is None:
            return None
        return self._publication_from_jsonapi(document.data)

    def _fetch_category(self, book_uuid: str) -> Optional[Category]:
        payload = self.make_proxy_request(f"{ENDPOINTS['BOOKS']}/{book_uuid}/lmsbook_category",
                                          headers=JSONAPI_HEADERS)
        document = parse_payload(CategoryDocument, payload, "category")
        if document.data is None:
            logger.info(f"Category for book {book_uuid} returned null data")
            return None
        return self._category_from_jsonapi(document.data)

    def _fetch_featured_image(self, book_uuid: str) -> Optional[str]:
        payload = self.make_proxy_request(f"{ENDPOINTS['FEATURED_IMAGE']}/{book_uuid}/featured_image",
                                          headers=JSONAPI_HEADERS)
        document = parse_payload(FileDocument, payload, "featured image")
        if document.data is None or document.data.attributes.uri is None:
            return None
        url = document.data.attributes.uri.url
        if not url:
            return None
        return url if url.startswith("http") else f"{self.base_url}{url}"

    # ===== Aggregation steps =====

    def load_secondary_books_data(self):
        """Merge copies / issued_count of the full book feed into the secondary cache"""
        try:
            payload = self.make_proxy_request(ENDPOINTS["BOOKS"], headers=JSONAPI_HEADERS)
            collection = parse_payload(BookCollection, payload, "secondary book feed")
        except (ApiError, SchemaException) as e:
            logger.warning(f"Failed to load secondary books data: {e.message}")
            return

        self.secondary_books.update((resource.id, resource.attributes) for resource in collection.data)
        logger.debug(f"Cached {self.secondary_books.size} books from secondary feed")

    def load_authors(self):
        """Load every author once per client: bulk listing first, then the fixed ID probe"""
        with self._authors_lock:
            if self._authors_loaded:
                return
            if not self.has_credentials:
                logger.info("Authentication required for author data")
                self._authors_loaded = True
                return

            success_count = 0
            error_count = 0
            try:
                payload = self.make_proxy_request(
                    ENDPOINTS["AUTHORS"], headers={**JSONAPI_HEADERS, "Authorization": self._basic_auth()}
                )
                collection = parse_payload(AuthorCollection, payload, "author list")
                for resource in collection.data:
                    author = self._author_from_jsonapi(resource)
                    if author.id:
                        self.authors.set(author.id, author)
                        success_count += 1
            except (ApiError, SchemaException) as e:
                logger.warning(f"Bulk author listing failed, probing individual authors: {e.message}")

            if success_count == 0:
                for author_id in FALLBACK_AUTHOR_IDS:
                    try:
                        author = self.authors.get_or_fetch(author_id, self._fetch_author)
                    except ApiError as e:
                        error_count += 1
                        if e.is_not_found:
                            logger.info(f"Author ID {author_id} not found (404), skipping")
                        else:
                            logger.warning(f"Error fetching author {author_id}: {e.message}")
                        continue
                    except SchemaException:
                        error_count += 1
                        continue
                    if author is not None:
                        success_count += 1

            self._authors_loaded = True
            logger.info(f"Author loading completed: {success_count} successful, {error_count} failed",
                        cached=self.authors.size)

    def _load_related(self, cache: EntityCache, what: str, relationship: str, loader,
                      resources: Iterable[BookResource]):
        success_count = 0
        error_count = 0
        for resource in resources:
            target_id = getattr(resource.relationships, relationship).internal_id
            if not target_id or target_id in cache:
                continue
            try:
                value = cache.get_or_fetch(target_id, lambda _key, book_uuid=resource.id: loader(book_uuid))
            except ApiError as e:
                error_count += 1
                if e.is_not_found:
                    logger.info(f"{what.capitalize()} for book {resource.id} not found (404), skipping")
                else:
                    logger.warning(f"Error fetching {what} for book {resource.id}: {e.message}")
                continue
            except SchemaException:
                error_count += 1
                continue
            if value is not None:
                success_count += 1
        logger.debug(f"{what.capitalize()} loading completed: {success_count} successful, {error_count} failed")

    def load_publications(self, resources: Iterable[BookResource]):
        self._load_related(self.publications, "publication", "lmspublication", self._fetch_publication, resources)

    def load_categories(self, resources: Iterable[BookResource]):
        self._load_related(self.categories, "category", "lmsbook_category", self._fetch_category, resources)

    def get_featured_image(self, book_uuid: str) -> Optional[str]:
        try:
            return self.images.get_or_fetch(book_uuid, self._fetch_featured_image)
        except ApiError as e:
            if e.is_not_found:
                logger.info(f"Featured image not found for book {book_uuid} (404)")
            else:
                logger.warning(f"Error fetching featured image for book {book_uuid}: {e.message}")
        except SchemaException:
            pass
        return None

    def load_featured_images(self, book_uuids: List[str]):
        """Fetch cover images for a page concurrently; failures leave the cover blank"""
        if not book_uuids:
            return
        with ThreadPoolExecutor(max_workers=min(self.image_workers, len(book_uuids)),
                                thread_name_prefix="library-images") as pool:
            list(pool.map(self.get_featured_image, book_uuids))
        logger.debug(f"Finished loading featured images, cache size: {self.images.size}")

    def transform_book(self, resource: BookResource) -> Book:
        """Denormalize a JSON:API book using whatever the caches hold right now"""
        attributes = resource.attributes
        relationships = resource.relationships
        title = attributes.title or "Unknown Title"

        secondary = self.secondary_books.get(resource.id)
        if secondary is not None:
            copies = _to_int(secondary.copies, 0)
            issued = _to_int(secondary.issued_count, 0)
        else:
            copies = _to_int(attributes.copies, 0) or 1
            issued = 0
        available = max(0, copies - issued)

        publisher = UNKNOWN_PUBLISHER
        publication_id = relationships.lmspublication.internal_id
        if publication_id:
            publication = self.publications.get(publication_id)
            if publication and publication.title:
                publisher = publication.title
            else:
                self.publications.schedule(publication_id, lambda _key: self._fetch_publication(resource.id))

        category = ""
        category_id = relationships.lmsbook_category.internal_id
        if category_id:
            cached_category = self.categories.get(category_id)
            if cached_category and cached_category.title and cached_category.title != NULL_CATEGORY:
                category = cached_category.title
            elif cached_category is None:
                self.categories.schedule(category_id, lambda _key: self._fetch_category(resource.id))

        author_ids = relationships.uid.internal_ids
        author_names = []
        for author_id in author_ids:
            author = self.authors.get(author_id)
            if author and author.title:
                author_names.append(author.title)
            else:
                self.authors.schedule(author_id, self._fetch_author)

        return Book(
            id=resource.id,
            title=title,
            author=", ".join(author_names) if author_names else UNKNOWN_AUTHOR,
            isbn=_to_text(attributes.isbn),
            category=category,
            status=BookStatus.AVAILABLE if available > 0 else BookStatus.BORROWED,
            copies=copies,
            books_available=available,
            books_issued=issued,
            publisher=publisher,
            price=_to_text(attributes.price),
            cover_image=self.images.get(resource.id) or "",
            description=attributes.description,
            author_ids=author_ids,
        )

    @staticmethod
    def filter_books(books: List[Book], search: Optional[str] = None, search_field: str = "all",
                     category: Optional[str] = None, author: Optional[str] = None) -> List[Book]:
        filtered = books

        if search:
            term = search.lower()
            field = search_field if search_field in SEARCH_FIELDS else "all"

            def matches(book: Book) -> bool:
                title = book.title.lower()
                isbn = book.isbn.lower()
                author_names = book.author.lower()
                if field == "title":
                    return term in title
                if field == "author":
                    return term in author_names
                if field == "isbn":
                    return term in isbn
                return term in title or term in isbn or term in author_names

            filtered = [book for book in filtered if matches(book)]

        if category and category != "all":
            wanted = category.lower()
            filtered = [
                book for book in filtered
                if book.category and book.category != NULL_CATEGORY and book.category.lower() == wanted
            ]

        if author:
            author_term = author.lower()
            filtered = [book for book in filtered if author_term in book.author.lower()]

        return filtered

    def get_books(self, search: Optional[str] = None, search_field: str = "all", category: Optional[str] = None,
                  author: Optional[str] = None, limit: Optional[int] = None,
                  offset: Optional[int] = None) -> List[Book]:
        """
        Fetch one page of books and return denormalized, filtered views.

        Filters apply to the fetched page only.
        """
        self.load_secondary_books_data()
        self.load_authors()

        params = [("fields[lmsbook--lmsbook]", BOOK_FIELDS), ("page[limit]", str(limit or self.default_limit))]
        if offset:
            params.append(("page[offset]", str(offset)))
        endpoint = f"{ENDPOINTS['BOOKS']}?{urlencode(params, safe='[],-')}"

        logger.debug(f"Fetching book page: {endpoint}")
        try:
            payload = self.make_proxy_request(endpoint, headers=JSONAPI_HEADERS)
        except ApiError as e:
            raise ApiError(f"Failed to fetch books: {e.message}", e.status) from e
        collection = parse_payload(BookCollection, payload, "book page")

        self.load_publications(collection.data)
        self.load_categories(collection.data)
        self.load_featured_images([resource.id for resource in collection.data])

        books = [self.transform_book(resource) for resource in collection.data]
        logger.info(f"Processed {len(books)} books")
        return self.filter_books(books, search=search, search_field=search_field, category=category, author=author)

    # ===== Lookups =====

    def get_book_details(self, book_uuid: str) -> Book:
        self.load_authors()
        try:
            payload = self.make_proxy_request(f"{ENDPOINTS['BOOKS']}/{book_uuid}", headers=JSONAPI_HEADERS)
        except ApiError as e:
            raise ApiError(f"Failed to fetch book details: {e.message}", e.status) from e
        resource = parse_payload(BookDocument, payload, "book").data

        self.load_publications([resource])
        self.load_categories([resource])
        self.get_featured_image(resource.id)
        return self.transform_book(resource)

    def get_publication(self, book_uuid: str) -> Publication:
        try:
            publication = self._fetch_publication(book_uuid)
        except ApiError as e:
            raise ApiError(f"Failed to fetch publication details: {e.message}", e.status) from e
        if publication is None:
            raise ApiError("Failed to fetch publication details: No publication data found", 404)
        return publication

    def get_author(self, author_id: str) -> Author:
        """Legacy author endpoint first, JSON:API resource as fallback"""
        if not self.has_credentials:
            raise ApiError("Failed to fetch author details: Authentication required", 401)

        try:
            author = self._fetch_author(author_id)
            if author is not None:
                return author
        except (ApiError, SchemaException) as e:
            logger.info(f"Standard author endpoint failed for ID {author_id}, trying JSON API: {e.message}")

        try:
            payload = self.make_proxy_request(
                f"{ENDPOINTS['AUTHORS']}/{author_id}",
                headers={**JSONAPI_HEADERS, "Authorization": self._basic_auth()},
            )
        except ApiError as e:
            raise ApiError(f"Failed to fetch author details: {e.message}", e.status) from e
        document = parse_payload(AuthorDocument, payload, "author")
        if document.data is None:
            raise ApiError("Failed to fetch author details: Author data not found in JSON API response", 404)
        return self._author_from_jsonapi(document.data, author_id=str(author_id))

    def get_authors(self) -> List[Author]:
        self.load_authors()
        return self.authors.values()

    def get_publications(self) -> List[Publication]:
        return self.publications.values()

    def get_categories(self) -> List[Category]:
        return self.categories.values()

    def get_categories_list(self) -> List[str]:
        """Category names: cache, then taxonomy, then books, then the default list"""
        cached = [c.title for c in self.categories.values() if c.title and c.title != NULL_CATEGORY]
        if cached:
            return cached

        try:
            payload = self.make_proxy_request(ENDPOINTS["CATEGORY_TAXONOMY"], headers=JSONAPI_HEADERS)
            collection = parse_payload(CategoryCollection, payload, "category taxonomy")
            names = [r.attributes.name for r in collection.data if r.attributes.name and r.attributes.name != NULL_CATEGORY]
            if names:
                return names
        except (ApiError, SchemaException) as e:
            logger.warning(f"Taxonomy API failed: {e.message}")

        try:
            books = self.get_books(limit=1000)
            names = list(dict.fromkeys(b.category for b in books if b.category and b.category != NULL_CATEGORY))
            if names:
                return names
        except (ApiError, SchemaException) as e:
            logger.warning(f"Failed to extract categories from books: {e.message}")

        logger.info("Using default categories")
        return list(DEFAULT_CATEGORIES)

    # ===== Circulation =====

    def _fetch_user_rows(self, endpoint_key: str, what: str) -> List[CirculationRow]:
        uid = self._require_user()
        payload = self.make_proxy_request(
            f"{ENDPOINTS[endpoint_key]}/{uid}?_format=json",
            headers={**JSON_HEADERS, "Authorization": self._basic_auth()},
        )
        if not payload:
            logger.info(f"No {what} data returned")
            return []
        if not isinstance(payload, list):
            logger.warning(f"{what.capitalize()} API returned non-array data: {type(payload).__name__}")
            return []
        return [parse_payload(CirculationRow, row, what) for row in payload]

    def get_user_borrowed_books(self) -> List[BorrowedBook]:
        now = now_utc()
        books = []
        for row in self._fetch_user_rows("BORROWED_BOOKS", "borrowed books"):
            issued_on = strip_html(row.requested_book_issued_date)
            books.append(BorrowedBook.from_dates(
                id=_to_text(row.id),
                bookname=row.lmsbook or "Unknown Book",
                requested_on=strip_html(row.created),
                issued_on=issued_on,
                returned_on=strip_html(row.requested_book_returned_date),
                issued_at=parse_upstream_date(issued_on),
                now=now,
            ))
        return books

    def get_user_requested_books(self) -> List[RequestedBook]:
        return [
            RequestedBook(
                id=_to_text(row.id),
                bookname=row.lmsbook or "Unknown Book",
                requested_on=strip_html(row.created),
                issued_on=strip_html(row.requested_book_issued_date),
                returned_on=strip_html(row.requested_book_returned_date),
            )
            for row in self._fetch_user_rows("REQUESTED_BOOKS", "requested books")
        ]

    def get_user_profile(self, include_counts: bool = True) -> UserProfile:
        uid = self._require_user()
        payload = self.make_proxy_request(
            f"{ENDPOINTS['USER_PROFILE']}/{uid}?_format=json",
            headers={**JSON_HEADERS, "Authorization": self._basic_auth()},
        )
        legacy = parse_payload(LegacyUserProfile, payload, "user profile")
        profile = UserProfile(
            uid=first_value(legacy.uid),
            uuid=first_value(legacy.uuid),
            name=first_value(legacy.name),
            email=first_value(legacy.mail),
            timezone=first_value(legacy.timezone),
            created=first_value(legacy.created),
            changed=first_value(legacy.changed),
        )
        profile.credits = profile.max_credits

        if include_counts:
            try:
                borrowed = self.get_user_borrowed_books()
                profile.borrowed_books_count = sum(1 for b in borrowed if b.status == CirculationStatus.ISSUED)
                profile.requested_books_count = sum(1 for b in borrowed if b.status == CirculationStatus.REQUESTED)
            except (ApiError, SchemaException) as e:
                logger.warning(f"Failed to get book counts: {e.message}")
        return profile

    def check_borrowing_eligibility(self) -> Eligibility:
        try:
            profile = self.get_user_profile(include_counts=False)
            borrowed = self.get_user_borrowed_books()
        except (ApiError, SchemaException) as e:
            logger.error(f"Failed to check borrowing eligibility: {e.message}")
            return Eligibility(
                can_borrow=False,
                current_books=0,
                max_books=MAX_BOOKS_ALLOWED,
                message="Unable to check borrowing eligibility. Please try again.",
            )

        current = sum(1 for book in borrowed if book.status == CirculationStatus.ISSUED)
        max_books = profile.max_books_allowed
        can_borrow = current < max_books
        if can_borrow:
            remaining = max_books - current
            message = f"You can borrow {remaining} more book{'' if remaining == 1 else 's'}."
        else:
            message = (f"You have reached the maximum limit of {max_books} books. "
                       "Please return some books before borrowing more.")
        return Eligibility(can_borrow=can_borrow, current_books=current, max_books=max_books, message=message)

    def reserve_book(self, book_uuid: str) -> Dict[str, Any]:
        """
        Request a book for the logged-in user.

        Returns:
            {success, message[, reservation]}; failures never raise
        """
        try:
            uid = self._require_user()
            if not self.csrf_token:
                raise ApiError("CSRF token not available", 401)

            payload = self.make_proxy_request(f"{ENDPOINTS['BOOKS']}/{book_uuid}", headers=JSONAPI_HEADERS)
            if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
                raise ApiError("Book not found", 404)
            book = parse_payload(BookDocument, payload, "book").data
            internal_id = book.attributes.drupal_internal__id
            if not internal_id:
                raise ApiError("Book internal ID not found", 404)
            title = book.attributes.title or "Unknown Title"

            reservation_data = {
                "title": [{"value": "Request API"}],
                "uid": [{"target_id": uid}],
                "lmsbook": [{"target_id": str(internal_id)}],
            }
            response = self.make_proxy_request(
                f"{ENDPOINTS['BOOK_RESERVATION']}?_format=json",
                method="POST",
                headers={
                    **JSON_HEADERS,
                    "X-CSRF-Token": self.csrf_token,
                    "Authorization": self._basic_auth(),
                },
                data=reservation_data,
            )
            if not response:
                raise ApiError("Reservation request failed", 500)

            reservation_id = ""
            if isinstance(response, dict):
                reservation_id = first_value(parse_payload(ReservationCreated, response, "reservation").id)

            reservation = Reservation.create(
                id=reservation_id or str(now_ms()),
                book_id=book_uuid,
                book_title=title,
                book_author=UNKNOWN_AUTHOR,
                now=now_utc(),
            )
            logger.info("Book reserved", book_id=book_uuid, reservation_id=reservation.id)
            return {
                "success": True,
                "message": f'Book "{title}" has been successfully reserved!',
                "reservation": reservation.to_dict(),
            }

        except ApiError as e:
            logger.error(f"Book reservation error: {e.message}", status=e.status)
            if e.status == 404:
                message = "Book not found or not available for reservation."
            elif e.status in (401, 403):
                message = "Authentication failed. Please login again."
            elif e.status == 400:
                message = "Invalid reservation request. Please check your borrowing limits."
            else:
                message = e.message
            return {"success": False, "message": message}
        except SchemaException:
            return {"success": False, "message": "Failed to reserve book. Please try again."}
