from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import RecordingDispatcher
from paysweep_backend.api.schemas import PaymentTimeoutConfigRequest
from paysweep_backend.api.services import SchedulerAdminService
from paysweep_backend.scheduling import InvalidConfigurationError, PaymentTimeoutScheduler
from paysweep_backend.state import Runtime


def _service_with_failing_audit():
    audit_logger = MagicMock()
    audit_logger.log_config_change = AsyncMock(side_effect=RuntimeError("log store down"))
    logging_service = MagicMock()
    logging_service.get_audit_logger.return_value = audit_logger

    runtime = Runtime(
        scheduler=MagicMock(),
        queue_backend=MagicMock(),
        payment_timeout=PaymentTimeoutScheduler(RecordingDispatcher()),
        log_cleanup=MagicMock(),
        logging_service=logging_service,
    )
    return SchedulerAdminService(runtime), audit_logger


@pytest.mark.asyncio
async def test_audit_failure_keeps_configuration_error(caplog):
    service, audit_logger = _service_with_failing_audit()
    request = PaymentTimeoutConfigRequest(
        check_interval_minutes=2000, payment_timeout_minutes=90
    )

    with caplog.at_level(logging.WARNING, logger="paysweep.api.services"):
        with pytest.raises(InvalidConfigurationError):
            await service.update_payment_timeout_config(request)

    audit_logger.log_config_change.assert_awaited_once()
    assert service.runtime.payment_timeout.payment_timeout_minutes == 90
    assert "审计记录失败" in caplog.text


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_successful_update():
    service, _ = _service_with_failing_audit()

    status = await service.update_payment_timeout_config(
        PaymentTimeoutConfigRequest(payment_timeout_minutes=45)
    )

    assert status.payment_timeout_minutes == 45
    assert status.is_running is False
