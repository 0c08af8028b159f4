"""
Tests for the ARM call counters and the error-wrapping metrics hooks.
"""

from azmachine.errors import BackendError, NotFoundError
from azmachine.metrics import (
    REGISTRY,
    SERVICE_DISK,
    SERVICE_NIC,
    generate_latest_metrics,
    on_arm_api_error_fail,
    on_arm_api_success,
)


def _sample(name: str, service: str) -> float:
    value = REGISTRY.get_sample_value(name, {"service": service})
    return value or 0.0


class TestMetricsHooks:
    def test_success_increments_counter(self):
        before = _sample("azmachine_api_request_count_total", SERVICE_NIC)
        on_arm_api_success(SERVICE_NIC, "NIC.Get succeeded for %s", "vm-1-nic")
        assert _sample("azmachine_api_request_count_total", SERVICE_NIC) == before + 1

    def test_failure_increments_counter_and_wraps(self):
        before = _sample("azmachine_api_failed_count_total", SERVICE_DISK)

        err = on_arm_api_error_fail(
            SERVICE_DISK,
            NotFoundError("gone", status=404),
            "Disk.Delete failed for %s",
            "d1",
            resource_name="d1",
        )

        assert _sample("azmachine_api_failed_count_total", SERVICE_DISK) == before + 1
        assert isinstance(err, NotFoundError)
        assert err.message == "Disk.Delete failed for d1: gone"
        assert err.service == SERVICE_DISK

    def test_foreign_exception_becomes_backend_error(self):
        err = on_arm_api_error_fail(SERVICE_NIC, OSError("reset"), "NIC.Get failed")
        assert isinstance(err, BackendError)
        assert "NIC.Get failed: reset" in str(err)


class TestExport:
    def test_generate_latest_metrics(self):
        on_arm_api_success(SERVICE_NIC, "NIC.Get succeeded for %s", "vm-1-nic")

        payload, content_type = generate_latest_metrics()

        assert b"azmachine_api_request_count_total" in payload
        assert content_type.startswith("text/plain")
