"""
Pytest fixtures and configuration for the library gateway tests
"""
import copy
import os
import sys
import tempfile
from concurrent.futures import Executor, Future

import pytest
from unittest.mock import MagicMock

# Settings and the secret key land in a throwaway directory
os.environ.setdefault('LIBRARY_CONFIG_DIR', tempfile.mkdtemp(prefix='library-test-config-'))

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'app'))

from constants import DEFAULT_SETTINGS  # noqa: E402
from exceptions import UpstreamException  # noqa: E402
from proxy import ProxyResult  # noqa: E402

BASE_URL = 'https://lib.example.org'
BOOKS_PATH = '/web/jsonapi/lmsbook/lmsbook'


class ImmediateExecutor(Executor):
    """Runs submitted work inline so background cache fills are deterministic"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeForwarder:
    """
    Stand-in for ProxyForwarder answering from registered routes.

    A route registered with its full endpoint (query string included) wins over
    one registered for the bare path. Unknown endpoints answer 404.
    """

    def __init__(self, base_url=BASE_URL):
        self.base_url = base_url
        self.routes = {}
        self.calls = []

    def add(self, endpoint, data=None, status=200, method='GET', error=None, status_text=''):
        self.routes[(method, endpoint)] = (status, data, error, status_text)

    def calls_to(self, path, method=None):
        return [
            call for call in self.calls
            if call['endpoint'].split('?')[0] == path and (method is None or call['method'] == method)
        ]

    def forward(self, endpoint, method='GET', headers=None, data=None):
        method = method.upper()
        self.calls.append({'endpoint': endpoint, 'method': method, 'headers': dict(headers or {}), 'data': data})

        route = self.routes.get((method, endpoint)) or self.routes.get((method, endpoint.split('?')[0]))
        if route is None:
            return ProxyResult(success=False, status=404, data={'message': 'No route'}, status_text='Not Found')

        status, payload, error, status_text = route
        if error is not None:
            raise UpstreamException(error)
        return ProxyResult(
            success=200 <= status < 300,
            status=status,
            data=payload,
            status_text=status_text or ('OK' if status < 400 else 'Error'),
        )


def make_book(uuid, title, internal_id=1, isbn='9780000000000', copies=1, issued_count=None,
              author_ids=('7',), publication_id='31', category_id='5', price='10.00', details='A book'):
    """JSON:API lmsbook resource"""
    attributes = {
        'drupal_internal__id': internal_id,
        'title': title,
        'isbn': isbn,
        'copies': copies,
        'price': price,
        'details': {'value': details, 'format': 'basic_html', 'processed': f'<p>{details}</p>'},
    }
    if issued_count is not None:
        attributes['issued_count'] = issued_count
    return {
        'type': 'lmsbook--lmsbook',
        'id': uuid,
        'attributes': attributes,
        'relationships': {
            'uid': {'data': [
                {'type': 'lmsbookauthor--lmsbookauthor', 'id': f'author-{a}', 'meta': {'drupal_internal__target_id': int(a)}}
                for a in author_ids
            ]},
            'lmspublication': {'data': (
                {'type': 'lmspublication--lmspublication', 'id': f'pub-{publication_id}',
                 'meta': {'drupal_internal__target_id': int(publication_id)}}
                if publication_id else None
            )},
            'lmsbook_category': {'data': (
                {'type': 'taxonomy_term--lmsbook_category', 'id': f'cat-{category_id}',
                 'meta': {'drupal_internal__target_id': int(category_id)}}
                if category_id else None
            )},
        },
    }


def make_author(internal_id, title, uuid=None):
    return {
        'type': 'lmsbookauthor--lmsbookauthor',
        'id': uuid or f'author-uuid-{internal_id}',
        'attributes': {
            'drupal_internal__id': internal_id,
            'title': title,
            'text_long': {'value': f'{title} bio', 'processed': f'<p>{title} bio</p>'},
            'created': '2025-06-09T05:55:29+00:00',
        },
    }


def make_publication(internal_id, title):
    return {'data': {
        'type': 'lmspublication--lmspublication',
        'id': f'pub-{internal_id}',
        'attributes': {'drupal_internal__id': internal_id, 'title': title},
    }}


def make_category(tid, name):
    return {'data': {
        'type': 'taxonomy_term--lmsbook_category',
        'id': f'cat-{tid}',
        'attributes': {'drupal_internal__tid': tid, 'name': name, 'description': None},
    }}


def make_image(url):
    return {'data': {
        'type': 'file--file',
        'id': 'file-1',
        'attributes': {'drupal_internal__fid': 1, 'filename': 'cover.jpg', 'uri': {'value': 'public://cover.jpg', 'url': url}},
    }}


LOGIN_RESPONSE = {
    'current_user': {'uid': '28', 'roles': ['authenticated'], 'name': 'alana'},
    'csrf_token': 'csrf-token-value',
    'logout_token': 'logout-token-value',
}


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.error = MagicMock()
    logger.warning = MagicMock()
    logger.debug = MagicMock()
    return logger


@pytest.fixture
def settings():
    """Default settings pointed at the fake upstream"""
    data = copy.deepcopy(DEFAULT_SETTINGS)
    data['api']['base_url'] = BASE_URL
    return data


@pytest.fixture
def forwarder():
    fake = FakeForwarder()
    fake.add('/web/user/login', LOGIN_RESPONSE, method='POST')
    fake.add('/web/user/logout', None, method='POST')
    return fake


@pytest.fixture
def library_api(forwarder, settings):
    """LibraryAPI with inline background work"""
    from library_api import LibraryAPI

    api = LibraryAPI(forwarder, settings, executor=ImmediateExecutor())
    yield api
    api.close()


@pytest.fixture
def logged_in_api(library_api):
    library_api.login('alana', 'secret', 'session_1700000000000_abcdefghi')
    return library_api


@pytest.fixture
def catalogue(forwarder):
    """Two-book catalogue with authors, publications, categories and covers registered"""
    books = [
        make_book('book-1', 'Dune', internal_id=11, isbn='9780441013593', copies=5,
                  author_ids=('7',), publication_id='31', category_id='5'),
        make_book('book-2', 'Neuromancer', internal_id=12, isbn='9780441569595', copies=2,
                  author_ids=('8', '13'), publication_id='32', category_id='6'),
    ]
    secondary = [
        make_book('book-1', 'Dune', internal_id=11, copies=5, issued_count=2),
        make_book('book-2', 'Neuromancer', internal_id=12, copies=2, issued_count=2),
    ]
    forwarder.add(BOOKS_PATH, {'data': secondary})
    page_endpoint = (
        f'{BOOKS_PATH}?fields[lmsbook--lmsbook]=title,uid,isbn,lmsbook_category,lmspublication,'
        'copies,price,details,featured_image,author&page[limit]=12'
    )
    forwarder.add(page_endpoint, {'data': books})
    forwarder.add('/web/jsonapi/lmsbookauthor/lmsbookauthor', {'data': [
        make_author(7, 'Frank Herbert'),
        make_author(8, 'William Gibson'),
        make_author(13, 'Bruce Sterling'),
    ]})
    forwarder.add(f'{BOOKS_PATH}/book-1/lmspublication', make_publication(31, 'Chilton Books'))
    forwarder.add(f'{BOOKS_PATH}/book-2/lmspublication', make_publication(32, 'Ace'))
    forwarder.add(f'{BOOKS_PATH}/book-1/lmsbook_category', make_category(5, 'Fiction'))
    forwarder.add(f'{BOOKS_PATH}/book-2/lmsbook_category', make_category(6, 'NULL'))
    forwarder.add(f'{BOOKS_PATH}/book-1/featured_image', make_image('/web/sites/default/files/dune.jpg'))
    forwarder.add(f'{BOOKS_PATH}/book-2/featured_image', make_image('https://cdn.example.org/neuromancer.jpg'))
    return {'books': books, 'page_endpoint': page_endpoint}


@pytest.fixture
def app(settings, forwarder):
    from app import create_app

    application = create_app(
        config_overrides={'TESTING': True, 'RATELIMIT_ENABLED': False, 'SECRET_KEY': 'test-secret-key'},
        settings=settings,
        forwarder=forwarder,
        start_scheduler=False,
    )
    yield application
    application.extensions['library_registry'].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in_client(client):
    response = client.post('/api/auth/login', json={'username': 'alana', 'password': 'secret'})
    assert response.status_code == 200
    return client
