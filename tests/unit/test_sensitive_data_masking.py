import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_card_number_masked(self):
        event_dict = {"event": "test", "card": "4111 1111 1111 1111"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "4111" not in result["card"]
        assert "***MASKED***" in result["card"]

    def test_unspaced_card_number_masked(self):
        event_dict = {"event": "test", "data": "paid with 5500000000000004 today"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "5500000000000004" not in result["data"]

    def test_password_masked(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]

    def test_client_secret_masked(self):
        event_dict = {"event": "payment.paypal", "data": "client_secret: EBWKjlELKMYqRNQ6sYvFo64FtaRLRR5BdHEESmha49TM"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "EBWKjlELKMYqRNQ6sYvFo64FtaRLRR5BdHEESmha49TM" not in result["data"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {"event": "order.created", "order_number": "ORD-20250101-ABC123", "quantity": 2}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20250101-ABC123"
        assert result["quantity"] == 2
        assert result["event"] == "order.created"
