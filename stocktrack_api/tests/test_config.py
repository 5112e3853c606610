"""Tests for stocktrack_api/config.py"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stocktrack_api.config import APISettings, FallbackPolicyName, PlatformEnv


class TestAPISettings:
    def test_defaults(self) -> None:
        settings = APISettings()

        assert settings.platform_env == PlatformEnv.DEV
        assert settings.stripe_tenant_metadata_key == "company_id"
        assert settings.stripe_tier_metadata_key == "tier"
        assert settings.stripe_customer_search_limit == 10
        assert settings.reconcile_fallback_policy == FallbackPolicyName.LATEST_OF_FIRST_CUSTOMER

    def test_reads_prefixed_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("STOCKTRACK_STRIPE_SECRET_KEY", "sk_test_env")
        monkeypatch.setenv("STOCKTRACK_RECONCILE_FALLBACK_POLICY", "none")
        monkeypatch.setenv("STOCKTRACK_PLATFORM_ENV", "production")

        settings = APISettings()

        assert settings.stripe_secret_key.get_secret_value() == "sk_test_env"
        assert settings.reconcile_fallback_policy == FallbackPolicyName.NONE
        assert settings.platform_env == PlatformEnv.PRODUCTION

    def test_secrets_are_not_rendered(self) -> None:
        settings = APISettings(stripe_secret_key="sk_live_secret", jwt_secret="jwt-secret")
        assert "sk_live_secret" not in repr(settings)
        assert "jwt-secret" not in repr(settings)

    @pytest.mark.parametrize("limit", [0, 101])
    def test_lookup_limits_bounded(self, limit: int) -> None:
        with pytest.raises(ValidationError):
            APISettings(stripe_subscription_list_limit=limit)

    def test_wildcard_cors_with_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError):
            APISettings(cors_origins=["*"], cors_allow_credentials=True)

    def test_unknown_fallback_policy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            APISettings(reconcile_fallback_policy="newest_anywhere")
