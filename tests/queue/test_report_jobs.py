import pytest
from unittest.mock import patch

from reportflow.queue.jobs import send_notification_job, sweep_timeouts_job
from reportflow.settings import settings

PAYLOAD = {"reportId": "r1", "kind": "report_submitted"}


@pytest.fixture(autouse=True)
def quiet_metrics():
    with patch("reportflow.queue.jobs.metrics.safe") as m:
        yield m


@patch("reportflow.queue.jobs.send_notification_http")
def test_notification_job_success(mock_send, quiet_metrics):
    mock_send.return_value = (True, 200, None)
    assert send_notification_job(PAYLOAD) is True
    assert mock_send.call_args.kwargs["headers"]["Idempotency-Key"] == "r1:report_submitted"
    assert quiet_metrics.call_count == 2


@patch("reportflow.queue.jobs.send_notification_http")
def test_notification_job_raises_for_retry(mock_send):
    mock_send.return_value = (False, 503, "unavailable")
    with pytest.raises(RuntimeError):
        send_notification_job(PAYLOAD)


@patch("reportflow.queue.jobs.send_notification_http")
def test_notification_job_rate_limited_is_retried(mock_send):
    mock_send.return_value = (False, 429, "slow down")
    with pytest.raises(RuntimeError):
        send_notification_job(PAYLOAD)


@patch("reportflow.queue.jobs.log")
@patch("reportflow.queue.jobs.send_notification_http")
def test_notification_job_terminal_4xx(mock_send, mock_log):
    mock_send.return_value = (False, 400, "bad payload")
    assert send_notification_job(PAYLOAD) is False
    assert mock_log.call_args.kwargs["event"] == "notify_terminal_error"


@patch("reportflow.queue.jobs.log")
@patch("reportflow.queue.jobs.sweep_expired_reports")
def test_sweep_job(mock_sweep, mock_log):
    mock_sweep.return_value = ["r1"]
    with patch.object(settings, "SWEEP_BATCH_LIMIT", 25):
        assert sweep_timeouts_job() == ["r1"]
    mock_sweep.assert_called_with(limit=25)
    assert mock_log.call_args.kwargs["event"] == "sweep_job_start"


@patch("reportflow.queue.jobs.log")
@patch("reportflow.queue.jobs.sweep_expired_reports")
def test_sweep_job_failure_is_logged_and_raised(mock_sweep, mock_log):
    mock_sweep.side_effect = ConnectionError("redis down")
    with pytest.raises(ConnectionError):
        sweep_timeouts_job()
    assert mock_log.call_args.kwargs["event"] == "sweep_job_exception"
