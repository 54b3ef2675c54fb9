"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from support_agent.services.metrics import MetricsClient


class TestMetricsRecording:
    """Verify that record_success / record_failure / record_event buffer the right data."""

    def _make_client(self, *, enabled: bool = False) -> MetricsClient:
        with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
            return MetricsClient()

    def test_record_success_appends_two_data_points(self):
        client = self._make_client()
        client.record_success("anthropic", "llm_stream", latency_ms=123.4)
        # Should buffer Count + Latency
        assert len(client._buffer) == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Calls/Count", "Calls/Latency"}

    def test_record_failure_appends_count_and_error(self):
        client = self._make_client()
        client.record_failure("tool", "create_ticket", error_type="invalid_input")
        assert len(client._buffer) == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Calls/Count", "Calls/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = self._make_client()
        client.record_failure("handoff", "POST webhook", error_type="503", latency_ms=500.0)
        assert len(client._buffer) == 3

    def test_success_dimensions_include_service_and_status(self):
        client = self._make_client()
        client.record_success("openai", "embed_query", latency_ms=50.0)
        count_metric = next(m for m in client._buffer if m["MetricName"] == "Calls/Count")
        dim_map = {d["Name"]: d["Value"] for d in count_metric["Dimensions"]}
        assert dim_map == {"Service": "openai", "Status": "success"}

    def test_failure_dimensions_include_error_type(self):
        client = self._make_client()
        client.record_failure("anthropic", "llm_stream", error_type="APIStatusError")
        error_metric = next(m for m in client._buffer if m["MetricName"] == "Calls/ErrorCount")
        dim_map = {d["Name"]: d["Value"] for d in error_metric["Dimensions"]}
        assert dim_map["Service"] == "anthropic"
        assert dim_map["Operation"] == "llm_stream"
        assert dim_map["ErrorType"] == "APIStatusError"

    def test_record_event_uses_given_dimensions(self):
        client = self._make_client()
        client.record_event("Conversation/Sentiment", Label="frustrated")
        (point,) = client._buffer
        assert point["MetricName"] == "Conversation/Sentiment"
        assert point["Value"] == 1
        assert point["Dimensions"] == [{"Name": "Label", "Value": "frustrated"}]


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_does_not_call_boto3(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            client = MetricsClient()
        client.record_event("RateLimit/Denied")
        with patch.object(client, "_get_cw_client") as get_client:
            assert client.flush() == 0
        get_client.assert_not_called()
        assert client._buffer == []

    def test_flush_empty_buffer_returns_zero(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            client = MetricsClient()
        assert client.flush() == 0

    def test_flush_when_enabled_calls_put_metric_data(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "true"}), \
             patch.object(MetricsClient, "_start_flush_thread"):
            client = MetricsClient()
        mock_cw = MagicMock()
        client.record_success("anthropic", "llm_stream", latency_ms=200.0)

        with patch.object(client, "_get_cw_client", return_value=mock_cw):
            sent = client.flush()

        assert sent == 2
        mock_cw.put_metric_data.assert_called_once()
        kwargs = mock_cw.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == "TechCorpSupport"
        assert len(kwargs["MetricData"]) == 2

    def test_flush_survives_cloudwatch_errors(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "true"}), \
             patch.object(MetricsClient, "_start_flush_thread"):
            client = MetricsClient()
        mock_cw = MagicMock()
        mock_cw.put_metric_data.side_effect = RuntimeError("throttled")
        client.record_event("RateLimit/Denied")

        with patch.object(client, "_get_cw_client", return_value=mock_cw):
            assert client.flush() == 0
