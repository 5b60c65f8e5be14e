import pytest

from home_services_api.app.core.exceptions import SMSDeliveryError
from home_services_api.app.services.sms_service import SMSService


@pytest.mark.parametrize("raw", ["9876543210", "919876543210", "+919876543210", "98765 43210", "+91-98765-43210"])
def test_mobile_numbers_are_normalised(raw):
    assert SMSService.format_phone_number(raw) == "+919876543210"


@pytest.mark.parametrize("raw", ["12345", "5876543210", "+14155550100", "98765x3210"])
def test_other_numbers_are_rejected(raw):
    with pytest.raises(SMSDeliveryError):
        SMSService.format_phone_number(raw)
