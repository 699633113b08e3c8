import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase, override_settings

from prices.exceptions import FeedDownloadError
from prices.feed import FeedClient, read_feed_file


@override_settings(FEED_URL="https://example.test/precios.csv", FEED_TIMEOUT_SECONDS=5)
class FeedClientTestCase(SimpleTestCase):
    """Tests for FeedClient with a mocked requests.Session."""

    def _mock_session(self, mock_session_cls, *, status_code=200, text="a,b\n", encoding="utf-8"):
        session = MagicMock()
        response = MagicMock()
        response.status_code = status_code
        response.text = text
        response.encoding = encoding
        session.get.return_value = response
        mock_session_cls.return_value = session
        return session, response

    @patch("prices.feed.requests.Session")
    def test_download_returns_text(self, mock_session_cls):
        session, _ = self._mock_session(mock_session_cls, text="cuit,precio\n1,2\n")

        with FeedClient() as client:
            text = client.download()

        self.assertEqual(text, "cuit,precio\n1,2\n")
        session.get.assert_called_once_with("https://example.test/precios.csv", timeout=5)
        session.close.assert_called_once()

    @patch("prices.feed.requests.Session")
    def test_explicit_url_wins(self, mock_session_cls):
        session, _ = self._mock_session(mock_session_cls)
        with FeedClient("https://other.test/feed.csv", timeout=1) as client:
            client.download()
        session.get.assert_called_once_with("https://other.test/feed.csv", timeout=1)

    @patch("prices.feed.requests.Session")
    def test_non_200_raises(self, mock_session_cls):
        self._mock_session(mock_session_cls, status_code=503)
        with FeedClient() as client:
            with self.assertRaises(FeedDownloadError):
                client.download()

    @patch("prices.feed.requests.Session")
    def test_network_error_raises(self, mock_session_cls):
        session, _ = self._mock_session(mock_session_cls)
        session.get.side_effect = requests.ConnectionError("down")
        with FeedClient() as client:
            with self.assertRaises(FeedDownloadError):
                client.download()

    @patch("prices.feed.requests.Session")
    def test_latin1_default_is_read_as_utf8(self, mock_session_cls):
        _, response = self._mock_session(mock_session_cls, encoding="ISO-8859-1")
        with FeedClient() as client:
            client.download()
        self.assertEqual(response.encoding, "utf-8")

    def test_download_outside_context_manager_fails(self):
        with self.assertRaises(RuntimeError):
            FeedClient().download()


class ReadFeedFileTestCase(SimpleTestCase):
    def test_reads_utf8(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "feed.csv"
            path.write_text("provincia\nNeuquén\n", encoding="utf-8")
            self.assertEqual(read_feed_file(path), "provincia\nNeuquén\n")

    def test_missing_file_raises(self):
        with self.assertRaises(FeedDownloadError):
            read_feed_file("/nonexistent/feed.csv")
