"""
TMDB client retry policy tests.

The HTTP session and rate limiter are mocked; backoff sleeps are patched out.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from boxoffice_pipeline.client import TMDBClient
from boxoffice_pipeline.config import Config
from boxoffice_pipeline.exceptions import ExternalFetchError
from boxoffice_pipeline.utils import RateLimiter


def make_response(status_code: int, payload=None, text: str = ""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(config, session):
    client = TMDBClient(config, session=session)
    # Request spacing is covered by TestRateLimiter; only backoff sleeps reach no_sleep here
    client.rate_limiter = MagicMock(spec=RateLimiter)
    return client


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("boxoffice_pipeline.client.time.sleep") as sleep:
        yield sleep


class TestRetryPolicy:

    def test_success_on_first_try(self, client, session):
        session.get.return_value = make_response(200, {"id": 550, "title": "Fight Club"})

        assert client.get_movie_details(550)["title"] == "Fight Club"
        assert session.get.call_count == 1

    def test_server_error_is_retried(self, client, session, no_sleep):
        session.get.side_effect = [
            make_response(502, text="Bad Gateway"),
            make_response(503, text="Service Unavailable"),
            make_response(200, {"id": 550}),
        ]

        assert client.get_movie_credits(550) == {"id": 550}
        assert session.get.call_count == 3
        assert no_sleep.call_count == 2

    def test_backoff_grows(self, client, session, no_sleep):
        session.get.side_effect = [make_response(500)] * 3 + [make_response(200, {"id": 1})]

        with patch("boxoffice_pipeline.client.random.random", return_value=0.5):
            client.get_movie_details(1)

        delays = [call.args[0] for call in no_sleep.call_args_list]
        assert delays == sorted(delays)
        assert delays[1] == pytest.approx(2 * delays[0])

    def test_client_error_is_not_retried(self, client, session, no_sleep):
        session.get.return_value = make_response(404, text='{"status_code":34}')

        with pytest.raises(ExternalFetchError) as exc_info:
            client.get_movie_details(99999999)

        assert exc_info.value.http_status == 404
        assert exc_info.value.body == '{"status_code":34}'
        assert session.get.call_count == 1
        no_sleep.assert_not_called()

    def test_rate_limit_response_is_not_retried(self, client, session):
        session.get.return_value = make_response(429, text="Too Many Requests")

        with pytest.raises(ExternalFetchError):
            client.get_movie_details(550)

        assert session.get.call_count == 1

    def test_undecodable_body_is_fetch_error(self, client, session, no_sleep):
        response = make_response(200, text="<html>maintenance</html>")
        response.json.side_effect = requests.exceptions.JSONDecodeError(
            "Expecting value", "<html>maintenance</html>", 0
        )
        session.get.return_value = response

        with pytest.raises(ExternalFetchError) as exc_info:
            client.get_movie_details(550)

        assert exc_info.value.http_status == 200
        assert exc_info.value.body == "<html>maintenance</html>"
        assert session.get.call_count == 1
        no_sleep.assert_not_called()

    def test_retries_are_bounded(self, client, session, config):
        session.get.return_value = make_response(500, text="Internal Server Error")

        with pytest.raises(ExternalFetchError) as exc_info:
            client.get_movie_images(550)

        assert session.get.call_count == config.max_retries + 1
        assert exc_info.value.http_status == 500
        assert exc_info.value.to_dict()["code"] == 500

    def test_timeout_is_retried(self, client, session):
        session.get.side_effect = [
            requests.exceptions.Timeout("read timed out"),
            make_response(200, {"id": 550}),
        ]

        assert client.get_movie_details(550) == {"id": 550}

    def test_persistent_connection_failure(self, client, session, config):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ExternalFetchError) as exc_info:
            client.get_movie_details(550)

        assert exc_info.value.http_status is None
        assert session.get.call_count == config.max_retries + 1


class TestRequests:

    def test_timeout_is_always_set(self, client, session, config):
        session.get.return_value = make_response(200)

        client.get_movie_credits(550)

        assert session.get.call_args.kwargs["timeout"] == config.request_timeout

    def test_images_request_locales(self, client, session):
        session.get.return_value = make_response(200, {"posters": []})

        client.get_movie_images(550)

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url.endswith("/movie/550/images")
        assert params["include_image_language"] == "fr,en,null"

    def test_api_key_sent_as_query_param(self, client, session):
        session.get.return_value = make_response(200)

        client.get_movie_details(550)

        params = session.get.call_args.kwargs["params"]
        assert params["api_key"] == "test-key"
        assert params["language"] == "en-US"

    def test_bearer_token_replaces_api_key(self, tmp_path):
        config = Config(bearer_token="token", db_user="test", db_name="test", log_dir=tmp_path)
        session = MagicMock(spec=requests.Session)
        session.get.return_value = make_response(200)

        TMDBClient(config, session=session).get_movie_credits(550)

        assert "api_key" not in session.get.call_args.kwargs["params"]
        assert config.get_headers()["Authorization"] == "Bearer token"

    def test_error_message_omits_credentials(self, client, session):
        session.get.return_value = make_response(401, text="Invalid API key")

        with pytest.raises(ExternalFetchError) as exc_info:
            client.get_movie_details(550)

        assert "test-key" not in exc_info.value.message


class TestRateLimiter:

    def test_requests_are_spaced(self, no_sleep):
        limiter = RateLimiter(requests_per_second=2)

        for _ in range(3):
            limiter.acquire()

        delays = [call.args[0] for call in no_sleep.call_args_list]
        assert len(delays) == 2
        assert delays[0] == pytest.approx(0.5, abs=0.05)
        assert delays[1] == pytest.approx(1.0, abs=0.05)
