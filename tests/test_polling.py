"""Tests for job completion polling and result aggregation."""

from __future__ import annotations

import httpx
import pytest

from query_api_client import ClientConfig, QueryClient
from query_api_client.errors import ClientError, JobTimeoutError, RemoteError

from tests.fixtures.mock_service import MockQueryService, create_mock_service_for_two_statements


class TestWaitForJobCompletion:
    """Tests for QueryClient.wait_for_job_completion."""

    def test_polls_until_completed(self, make_client, fake_clock, token_verifier):
        svc = create_mock_service_for_two_statements()
        client = make_client(svc, poll_interval_seconds=1.0)

        final = client.wait_for_job_completion("job-12345")

        assert final["status"] == "completed"
        assert final["queryJobId"] == "job-12345"
        assert len(svc.get_calls("/api/v1/queries/job-12345")) == 3
        assert fake_clock.sleeps == [1.0, 1.0]
        assert token_verifier.calls == 3

    @pytest.mark.parametrize("status", ["failed", "canceled"])
    def test_failed_and_canceled_are_terminal(self, make_client, status):
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["running", status], statements=[{"id": "s-1", "query": "SELECT 1", "status": "failed"}])
        client = make_client(svc)

        final = client.wait_for_job_completion("job-1")

        assert final["status"] == status

    def test_canceled_job_keeps_cancellation_details(self, make_client):
        """Test polling after cancel_job ends once the job reports canceled."""
        svc = MockQueryService()
        svc.add_job(
            "job-1",
            statuses=["running", "running", "canceled"],
            statements=[{"id": "s-1", "query": "SELECT 1", "status": "waiting"}],
            cancellationReason="Test cancellation",
            canceledAt="2024-01-01T00:00:05Z",
        )
        client = make_client(svc)

        client.cancel_job("job-1", {"reason": "Test cancellation"})
        final = client.wait_for_job_completion("job-1", max_wait_seconds=15)

        assert final["status"] == "canceled"
        assert final["cancellationReason"] == "Test cancellation"
        assert final["canceledAt"] == "2024-01-01T00:00:05Z"

    def test_timeout(self, make_client, fake_clock):
        """Test a job that never finishes raises and stops polling at the deadline."""
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["running"])
        client = make_client(svc, poll_interval_seconds=2.0)

        with pytest.raises(JobTimeoutError, match="Query job job-1 did not complete within 5 seconds") as exc_info:
            client.wait_for_job_completion("job-1", max_wait_seconds=5)

        # polls at t=0, 2, 4 and a final one on the deadline at t=5
        assert len(svc.call_log) == 4
        assert fake_clock.sleeps == [2.0, 2.0, 1.0]
        assert exc_info.value.context["status"] == "running"
        assert isinstance(exc_info.value, ClientError)
        assert isinstance(exc_info.value, TimeoutError)

    def test_no_poll_after_deadline(self, make_client, fake_clock):
        """Test a poll interval longer than the deadline is cut short."""
        started = fake_clock.now
        poll_times = []

        def handler(request):
            poll_times.append(fake_clock.now - started)
            return httpx.Response(200, json={"queryJobId": "job-1", "status": "running", "statements": []})

        svc = MockQueryService()
        svc.add_custom_handler(r"/api/v1/queries/job-1$", handler)
        client = make_client(svc, poll_interval_seconds=60.0)

        with pytest.raises(JobTimeoutError):
            client.wait_for_job_completion("job-1", max_wait_seconds=30)

        assert poll_times == [0.0, 30.0]
        assert fake_clock.sleeps == [30.0]

    def test_completion_after_deadline_is_a_timeout(self, make_client, fake_clock):
        """Test a job finishing only after the deadline is never reported as completed."""
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["running", "running", "completed"])
        client = make_client(svc, poll_interval_seconds=60.0)

        with pytest.raises(JobTimeoutError):
            client.wait_for_job_completion("job-1", max_wait_seconds=30)

        assert len(svc.call_log) == 2
        assert sum(fake_clock.sleeps) == 30.0

    def test_slow_poll_past_deadline_stops_polling(self, fake_clock, token_verifier):
        """Test the clock is checked again after sleeping."""
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["running", "completed"])

        def oversleep(seconds):
            fake_clock.sleep(seconds + 1.0)

        client = QueryClient(
            ClientConfig(url="https://query.test.keboola.com", token="test-token", poll_interval_seconds=2.0),
            token_verifier=token_verifier,
            transport=svc.get_transport(),
            sleep=oversleep,
            clock=fake_clock.monotonic,
        )

        with pytest.raises(JobTimeoutError):
            client.wait_for_job_completion("job-1", max_wait_seconds=2)

        assert len(svc.call_log) == 1

    def test_terminal_status_on_last_poll_wins(self, make_client, fake_clock):
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["running", "running", "completed"])
        client = make_client(svc, poll_interval_seconds=5.0)

        final = client.wait_for_job_completion("job-1", max_wait_seconds=10)

        assert final["status"] == "completed"

    def test_default_max_wait_from_config(self, make_client, fake_clock):
        svc = MockQueryService()
        svc.add_job("job-1", statuses=["waiting"])
        client = make_client(svc, poll_interval_seconds=1.0, max_wait_seconds=3)

        with pytest.raises(JobTimeoutError):
            client.wait_for_job_completion("job-1")

        assert sum(fake_clock.sleeps) == 3.0

    def test_status_error_propagates(self, make_client):
        svc = MockQueryService()
        client = make_client(svc)

        with pytest.raises(RemoteError, match="not found"):
            client.wait_for_job_completion("missing-job")


class TestExecuteWorkspaceQuery:
    """Tests for QueryClient.execute_workspace_query."""

    def test_aggregates_results_in_statement_order(self, make_client):
        svc = create_mock_service_for_two_statements()
        client = make_client(svc)

        response = client.execute_workspace_query("main", "ws-1", {
            "statements": ["INSERT INTO t VALUES (4, 'test4')", "SELECT id, name FROM t"],
            "transactional": True,
        })

        assert response["queryJobId"] == "job-12345"
        assert response["status"] == "completed"
        assert [s["id"] for s in response["statements"]] == ["stmt-1", "stmt-2"]
        assert len(response["results"]) == 2
        assert response["results"][0]["rowsAffected"] == 1
        assert response["results"][1]["data"] == [["1", "Alice"], ["2", "Bob"]]

        result_paths = [call[1] for call in svc.get_calls("/results")]
        assert result_paths == [
            "/api/v1/queries/job-12345/stmt-1/results",
            "/api/v1/queries/job-12345/stmt-2/results",
        ]

    def test_failed_job_returns_without_results(self, make_client):
        svc = MockQueryService()
        svc.submit_job_ids.append("job-1")
        svc.add_job("job-1", statuses=["running", "failed"], statements=[
            {"id": "s-1", "query": "SELECT * FROM non_existent_table_12345", "status": "failed"},
        ])
        client = make_client(svc)

        response = client.execute_workspace_query("main", "ws", {"statements": ["SELECT * FROM non_existent_table_12345"]})

        assert response["status"] == "failed"
        assert response["results"] == []
        assert svc.get_calls("/results") == []

    def test_result_failure_aborts_aggregation(self, make_client):
        svc = create_mock_service_for_two_statements()
        del svc.results[("job-12345", "stmt-1")]
        client = make_client(svc)

        with pytest.raises(RemoteError, match="Statement stmt-1 not found"):
            client.execute_workspace_query("main", "ws", {"statements": ["INSERT ...", "SELECT ..."]})

        # stmt-2 is never requested
        assert len(svc.get_calls("/results")) == 1

    def test_timeout_propagates(self, make_client):
        svc = MockQueryService()
        svc.submit_job_ids.append("job-1")
        svc.add_job("job-1", statuses=["running"])
        client = make_client(svc)

        with pytest.raises(JobTimeoutError):
            client.execute_workspace_query("main", "ws", {"statements": ["SELECT 1"]}, max_wait_seconds=2)
        assert svc.get_calls("/results") == []

    def test_missing_job_id_in_submit_response(self, make_client):
        svc = MockQueryService()
        svc.add_custom_handler(r"/api/v1/branches", lambda request: httpx.Response(201, json={}))
        client = make_client(svc)

        with pytest.raises(ClientError, match="queryJobId"):
            client.execute_workspace_query("main", "ws", {"statements": ["SELECT 1"]})

    def test_submit_rejected(self, make_client):
        svc = MockQueryService()
        client = make_client(svc)

        with pytest.raises(RemoteError) as exc_info:
            client.execute_workspace_query("main", "ws", {"statements": []})
        assert exc_info.value.status_code == 400
