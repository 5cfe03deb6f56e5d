import re

from playsafe.services.report_code_service import ReportCodeService, report_code_service


def test_code_format():
    assert re.fullmatch(r"PS-\d{6}", report_code_service.generate())


def test_sequential_codes_are_unique_on_a_frozen_clock():
    service = ReportCodeService(clock=lambda: 1_700_000_123_456)
    codes = [service.generate() for _ in range(50)]
    assert codes[0] == "PS-123456"
    assert len(set(codes)) == 50
    assert codes[1] == "PS-123457"


def test_codes_wrap_at_six_digits():
    service = ReportCodeService(clock=lambda: 1_700_000_999_999)
    assert service.generate() == "PS-999999"
    assert service.generate() == "PS-000000"


def test_clock_moving_forward_is_used_directly():
    ticks = iter([1_000_000_000_100, 1_000_000_000_900])
    service = ReportCodeService(clock=lambda: next(ticks))
    assert service.generate() == "PS-000100"
    assert service.generate() == "PS-000900"
