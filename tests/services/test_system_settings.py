"""Store-backed rate provider and settings maintenance."""

from decimal import Decimal

import pytest

from lending_kernel.domain.rates import RateKey
from lending_kernel.exceptions import RateNotConfiguredError
from lending_kernel.services.system_settings import (
    SettingDefault,
    SettingsRateProvider,
    SystemSettingsService,
)

DEFAULTS = (
    SettingDefault(key=RateKey.PENALTY_RATE, value="3", category="rates"),
    SettingDefault(key=RateKey.FINANCING_PERCENTAGE, value="15", category="limits"),
)


@pytest.fixture
def seeded(store):
    with store.unit_of_work() as s:
        SystemSettingsService(s).seed_defaults(DEFAULTS)
    return store


class TestSeedDefaults:
    def test_seed_inserts_missing_only(self, store):
        with store.unit_of_work() as s:
            assert SystemSettingsService(s).seed_defaults(DEFAULTS) == 2
        with store.unit_of_work() as s:
            assert SystemSettingsService(s).seed_defaults(DEFAULTS) == 0

    def test_seed_keeps_operator_values(self, seeded):
        with seeded.unit_of_work() as s:
            SystemSettingsService(s).set(RateKey.PENALTY_RATE, "4")
        with seeded.unit_of_work() as s:
            SystemSettingsService(s).seed_defaults(DEFAULTS)
            assert SystemSettingsService(s).get(RateKey.PENALTY_RATE) == "4"


class TestSet:
    def test_returns_previous_value(self, seeded):
        with seeded.unit_of_work() as s:
            assert SystemSettingsService(s).set(RateKey.PENALTY_RATE, " 2.5 ") == "3"
        with seeded.session() as s:
            assert SystemSettingsService(s).get(RateKey.PENALTY_RATE) == "2.5"

    def test_unknown_key(self, seeded):
        with seeded.unit_of_work() as s:
            with pytest.raises(KeyError):
                SystemSettingsService(s).set("rates.unknown", "1")

    def test_non_numeric_value_refused(self, seeded):
        with seeded.unit_of_work() as s:
            with pytest.raises(RateNotConfiguredError):
                SystemSettingsService(s).set(RateKey.PENALTY_RATE, "three")


class TestSettingsRateProvider:
    def test_reads_table(self, seeded):
        with seeded.session() as s:
            assert SettingsRateProvider(s).penalty_rate() == Decimal("3")

    def test_falls_back_to_defaults(self, seeded):
        with seeded.session() as s:
            provider = SettingsRateProvider(s, {RateKey.FCI_ANNUAL_RATE: "22.08"})
            assert provider.get_decimal(RateKey.FCI_ANNUAL_RATE) == Decimal("22.08")

    def test_table_wins_over_fallback(self, seeded):
        with seeded.session() as s:
            provider = SettingsRateProvider(s, {RateKey.PENALTY_RATE: "9"})
            assert provider.penalty_rate() == Decimal("3")

    def test_missing_everywhere(self, store):
        with store.session() as s:
            with pytest.raises(RateNotConfiguredError):
                SettingsRateProvider(s).penalty_rate()
