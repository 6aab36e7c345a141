import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_stripe_secret_key_masked(self):
        event_dict = {"event": "test", "error": "Invalid API Key: sk_live_51HxYz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "sk_live_51HxYz" not in result["error"]
        assert "***MASKED***" in result["error"]

    def test_stripe_test_key_masked(self):
        event_dict = {"event": "test", "key": "sk_test_4eC39HqLyjWDarjtT1zdp7dc"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["key"] == "***MASKED***"

    def test_webhook_secret_masked(self):
        event_dict = {"event": "test", "config": "secret is whsec_abc123XYZ"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "whsec_abc123XYZ" not in result["config"]

    def test_password_masked(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_bearer_token_masked(self):
        event_dict = {"event": "test", "header": "token=A21AAF-paypal-access"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "A21AAF-paypal-access" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_non_string_values_untouched(self):
        event_dict = {"event": "test", "retry": 3, "refs": ["stripe_session_id"]}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["retry"] == 3
        assert result["refs"] == ["stripe_session_id"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {
            "event": "payment.confirmed",
            "order_id": "0192f3a4-5b6c-7d8e-9f00-112233445566",
            "session_id": "cs_test_a1b2c3",
        }
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_id"] == "0192f3a4-5b6c-7d8e-9f00-112233445566"
        assert result["session_id"] == "cs_test_a1b2c3"
        assert result["event"] == "payment.confirmed"
