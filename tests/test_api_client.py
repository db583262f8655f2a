"""
Tests for the generic API client
"""
import pytest
import requests
from unittest.mock import MagicMock, patch

from api_client import ApiClient
from exceptions import ApiError


def _response(status=200, payload=None, text='', reason='OK'):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.reason = reason
    response.json.return_value = payload
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def api(session):
    return ApiClient('https://api.example.org/', retries=3, retry_delay=1.0, session=session)


class TestApiClient:

    def test_success_returns_json(self, api, session):
        session.request.return_value = _response(payload={'ok': True})

        assert api.get('/status') == {'ok': True}
        args, kwargs = session.request.call_args
        assert args == ('GET', 'https://api.example.org/status')
        assert kwargs['timeout'] == 30

    def test_raw_returns_text(self, api, session):
        session.request.return_value = _response(text='<svg/>')

        assert api.get('https://other.example.org/qr.svg', raw=True) == '<svg/>'
        assert session.request.call_args[0][1] == 'https://other.example.org/qr.svg'

    @patch('api_client.time.sleep')
    def test_server_error_retried_with_linear_delay(self, sleep, api, session):
        session.request.side_effect = [_response(status=500, reason='Server Error')] * 3 + [_response(payload=[])]

        assert api.get('/flaky') == []
        assert session.request.call_count == 4
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 3.0]

    @patch('api_client.time.sleep')
    def test_gives_up_after_retries(self, sleep, api, session):
        session.request.return_value = _response(status=502, reason='Bad Gateway')

        with pytest.raises(ApiError) as exc_info:
            api.get('/down')

        assert exc_info.value.status == 502
        assert session.request.call_count == 4

    @patch('api_client.time.sleep')
    def test_timeout_not_retried(self, sleep, api, session):
        session.request.side_effect = requests.Timeout('slow')

        with pytest.raises(ApiError) as exc_info:
            api.get('/slow')

        assert exc_info.value.is_network_error
        assert session.request.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.parametrize('status', [401, 403])
    @patch('api_client.time.sleep')
    def test_auth_errors_not_retried(self, sleep, status, api, session):
        session.request.return_value = _response(status=status, reason='Denied')

        with pytest.raises(ApiError) as exc_info:
            api.post('/secure', data={'a': 1})

        assert exc_info.value.status == status
        assert session.request.call_count == 1

    @patch('api_client.time.sleep')
    def test_connection_error_retried(self, sleep, api, session):
        session.request.side_effect = [requests.ConnectionError('refused'), _response(payload={'ok': 1})]

        assert api.get('/recovering') == {'ok': 1}
        assert session.request.call_count == 2

    def test_auth_header_helpers(self, api, session):
        session.request.return_value = _response(payload={})

        api.set_auth_header('abc')
        api.get('/me')
        assert session.request.call_args[1]['headers']['Authorization'] == 'Bearer abc'

        api.remove_auth_header()
        api.get('/me')
        assert 'Authorization' not in session.request.call_args[1]['headers']

    def test_base_url_accessors(self, api):
        api.set_base_url('https://new.example.org/')
        assert api.get_base_url() == 'https://new.example.org'
        assert api.build_url('x/y') == 'https://new.example.org/x/y'
