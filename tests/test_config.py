from payledger.config import DEFAULT_API_BASE_URL, DEFAULT_PAYMENT_METHOD_CODE, Settings


def test_provider_defaults_are_neutral(monkeypatch):
    monkeypatch.delenv("API_BASE_URL", raising=False)
    monkeypatch.delenv("PAYMENT_METHOD_CODE", raising=False)

    settings = Settings(_env_file=None)

    assert settings.api_base_url == DEFAULT_API_BASE_URL
    assert settings.payment_method_code == DEFAULT_PAYMENT_METHOD_CODE


def test_provider_settings_come_from_environment(monkeypatch):
    monkeypatch.setenv("API_BASE_URL", "https://api.acme-pay.test")
    monkeypatch.setenv("PAYMENT_METHOD_CODE", "acme_pay")
    monkeypatch.setenv("WEBHOOK_SECRET", "   ")

    settings = Settings(_env_file=None)

    assert settings.api_base_url == "https://api.acme-pay.test"
    assert settings.payment_method_code == "acme_pay"
    assert settings.webhook_secret is None
