try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from crosspost.models.publish import PlatformResult, PublishStatus, aggregate_status


def _result(success: bool) -> PlatformResult:
    return PlatformResult(platform="facebook", account_id="a", success=success)


def test_no_results_is_pending() -> None:
    assert aggregate_status([]) == PublishStatus.PENDING


def test_all_success_is_completed() -> None:
    assert aggregate_status([_result(True), _result(True)]) == PublishStatus.COMPLETED


def test_all_failure_is_failed() -> None:
    assert aggregate_status([_result(False), _result(False)]) == PublishStatus.FAILED


def test_mixed_is_partially_completed() -> None:
    assert (
        aggregate_status([_result(True), _result(False)])
        == PublishStatus.PARTIALLY_COMPLETED
    )
