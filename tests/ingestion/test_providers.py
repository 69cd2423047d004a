"""Tests for external provider clients."""

import json
import socket
from http.client import IncompleteRead, RemoteDisconnected
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from classmarket.errors import MalformedDataError, MissingDataError, ProviderUnavailableError
from classmarket.ingestion.exchange_rate import EXCHANGE_RATE_KEY, ExchangeRateService
from classmarket.ingestion.providers import (
    ChartPriceProvider,
    ExchangeRateProvider,
    determine_market_session,
    parse_chart_response,
)
from classmarket.models.instrument import MarketSession
from classmarket.persistence import SETTINGS


def _mock_response(body, status=200):
    response = MagicMock()
    response.getcode.return_value = status
    response.read.return_value = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    context = MagicMock()
    context.__enter__.return_value = response
    context.__exit__.return_value = False
    return context


class TestParseChartResponse:
    """Test chart payload parsing."""

    def test_valid_payload(self, chart_payload):
        quote = parse_chart_response(chart_payload, "AAPL", now_epoch=1500)

        assert quote.symbol == "AAPL"
        assert quote.price == 200.5
        assert quote.previous_close == 198.0
        assert quote.change == pytest.approx(2.5)
        assert quote.change_percent == pytest.approx(2.5 / 198.0 * 100)
        assert quote.currency == "USD"
        assert quote.market_state == MarketSession.REGULAR

    def test_empty_result_is_missing_data(self):
        with pytest.raises(MissingDataError):
            parse_chart_response({"chart": {"result": []}}, "AAPL", 0)

    def test_null_result_is_missing_data(self):
        with pytest.raises(MissingDataError):
            parse_chart_response({"chart": {"result": None, "error": {"code": "Not Found"}}}, "X", 0)

    def test_wrong_shape_is_malformed(self):
        with pytest.raises(MalformedDataError):
            parse_chart_response({"unexpected": True}, "AAPL", 0)

    def test_missing_price(self, chart_payload):
        del chart_payload["chart"]["result"][0]["meta"]["regularMarketPrice"]
        with pytest.raises(MissingDataError):
            parse_chart_response(chart_payload, "AAPL", 0)

    def test_no_previous_close_means_no_change(self, chart_payload):
        del chart_payload["chart"]["result"][0]["meta"]["chartPreviousClose"]
        quote = parse_chart_response(chart_payload, "AAPL", 0)

        assert quote.previous_close is None
        assert quote.change == 0.0
        assert quote.change_percent == 0.0


class TestMarketSession:
    """Test session detection."""

    PERIODS = {
        "currentTradingPeriod": {
            "regular": {"start": 1000, "end": 2000},
            "pre": {"start": 500, "end": 1000},
            "post": {"start": 2000, "end": 3000},
        }
    }

    @pytest.mark.parametrize("now_epoch,expected", [
        (1500, MarketSession.REGULAR),
        (700, MarketSession.PRE),
        (2500, MarketSession.POST),
        (5000, MarketSession.CLOSED),
        (100, MarketSession.CLOSED),
    ])
    def test_from_trading_periods(self, now_epoch, expected):
        assert determine_market_session(self.PERIODS, now_epoch) == expected

    def test_upstream_state_wins(self):
        meta = {"marketState": "post", **self.PERIODS}
        assert determine_market_session(meta, 1500) == MarketSession.POST

    def test_unknown_upstream_state_falls_back_to_periods(self):
        meta = {"marketState": "PREPRE", **self.PERIODS}
        assert determine_market_session(meta, 1500) == MarketSession.REGULAR

    def test_no_periods_is_closed(self):
        assert determine_market_session({}, 1500) == MarketSession.CLOSED


class TestChartPriceProvider:
    """Test the HTTP quote client."""

    @patch("classmarket.ingestion.providers.urlopen")
    def test_fetch_quote(self, mock_urlopen, chart_payload):
        mock_urlopen.return_value = _mock_response(chart_payload)
        provider = ChartPriceProvider(clock=lambda: 1500)

        quote = provider.fetch_quote("AAPL")

        assert quote.price == 200.5
        request = mock_urlopen.call_args[0][0]
        assert "AAPL" in request.full_url
        assert request.get_header("User-agent")

    @patch("classmarket.ingestion.providers.urlopen")
    def test_symbol_is_url_quoted(self, mock_urlopen, chart_payload):
        mock_urlopen.return_value = _mock_response(chart_payload)
        ChartPriceProvider(clock=lambda: 0).fetch_quote("^KS11")

        assert "%5EKS11" in mock_urlopen.call_args[0][0].full_url

    @patch("classmarket.ingestion.providers.urlopen")
    def test_http_error(self, mock_urlopen):
        mock_urlopen.side_effect = HTTPError("http://x", 429, "Too Many Requests", None, None)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            ChartPriceProvider().fetch_quote("AAPL")

        assert exc_info.value.status_code == 429
        assert exc_info.value.provider == ChartPriceProvider.name

    @pytest.mark.parametrize("error", [URLError("dns failure"), socket.timeout("timed out"),
                                       ConnectionResetError(),
                                       RemoteDisconnected("closed")])
    def test_network_errors(self, error):
        with patch("classmarket.ingestion.providers.urlopen", side_effect=error):
            with pytest.raises(ProviderUnavailableError):
                ChartPriceProvider().fetch_quote("AAPL")

    @patch("classmarket.ingestion.providers.urlopen")
    def test_non_2xx_status(self, mock_urlopen):
        mock_urlopen.return_value = _mock_response({}, status=304)
        with pytest.raises(ProviderUnavailableError):
            ChartPriceProvider().fetch_quote("AAPL")

    @patch("classmarket.ingestion.providers.urlopen")
    def test_invalid_json(self, mock_urlopen):
        mock_urlopen.return_value = _mock_response(b"<html>rate limited</html>")
        with pytest.raises(MalformedDataError):
            ChartPriceProvider().fetch_quote("AAPL")

    @patch("classmarket.ingestion.providers.urlopen")
    def test_undecodable_body_is_malformed(self, mock_urlopen):
        mock_urlopen.return_value = _mock_response(b"\xff\xfe{}")
        with pytest.raises(MalformedDataError):
            ChartPriceProvider().fetch_quote("AAPL")

    @patch("classmarket.ingestion.providers.urlopen")
    def test_truncated_body_is_unavailable(self, mock_urlopen):
        context = _mock_response({})
        context.__enter__.return_value.read.side_effect = IncompleteRead(b"{\"cha", 100)
        mock_urlopen.return_value = context

        with pytest.raises(ProviderUnavailableError):
            ChartPriceProvider().fetch_quote("AAPL")


class TestExchangeRateProvider:
    """Test the exchange-rate client."""

    @patch("classmarket.ingestion.providers.urlopen")
    def test_fetch_rates(self, mock_urlopen):
        mock_urlopen.return_value = _mock_response({"base": "USD", "rates": {"KRW": 1380.25}})
        assert ExchangeRateProvider().fetch_rates() == {"KRW": 1380.25}

    @patch("classmarket.ingestion.providers.urlopen")
    def test_missing_rates_table(self, mock_urlopen):
        mock_urlopen.return_value = _mock_response({"result": "error"})
        with pytest.raises(MalformedDataError):
            ExchangeRateProvider().fetch_rates()

    @patch("classmarket.ingestion.providers.urlopen")
    def test_undecodable_body_keeps_last_rate(self, mock_urlopen, ledger):
        mock_urlopen.return_value = _mock_response(b"\xff\xfe{}")
        service = ExchangeRateService(ledger, ExchangeRateProvider())

        update = service.update_exchange_rate()

        assert update.updated is False
        assert update.rate == 1350
        assert ledger.get(SETTINGS, EXCHANGE_RATE_KEY) is None

    def test_unexpected_provider_error_keeps_last_rate(self, ledger):
        provider = MagicMock()
        provider.fetch_rates.side_effect = AttributeError("boom")
        service = ExchangeRateService(ledger, provider)

        assert service.fetch_exchange_rate() == 1350
        assert service.update_exchange_rate().updated is False
