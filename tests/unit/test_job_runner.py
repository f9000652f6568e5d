from unittest.mock import MagicMock

from scriptorium.jobs.models import AdvanceResult
from scriptorium.worker.job_runner import JobRunner


def _make_runner() -> tuple[JobRunner, MagicMock]:
    """Create a JobRunner with a mocked job service."""
    mock_service = MagicMock()
    settings = MagicMock(slice_budget_seconds=30)
    runner = JobRunner(mock_service, settings, clock=lambda: 100.0)
    return runner, mock_service


class TestSuccessfulAdvance:
    def test_calls_service_with_deadline(self) -> None:
        runner, mock_service = _make_runner()

        runner.run("job-1")

        job_id, deadline = mock_service.advance.call_args.args
        assert job_id == "job-1"
        assert deadline.remaining() == 30.0

    def test_returns_service_result(self) -> None:
        runner, mock_service = _make_runner()
        expected = AdvanceResult(job=MagicMock(), processed=2, remaining=1, done=False)
        mock_service.advance.return_value = expected

        assert runner.run("job-1") is expected


class TestFailedAdvance:
    def test_exception_is_contained(self) -> None:
        runner, mock_service = _make_runner()
        mock_service.advance.side_effect = Exception("database went away")

        assert runner.run("job-1") is None
