import pytest

from app.services.management_cost import MANAGEMENT_FEE_BANDS, FeeBand, management_cost


@pytest.mark.parametrize(
    ("spend", "fee"),
    [
        (2500, 2000),
        (5000, 2000),
        (5001, 2500),
        (10000, 2500),
        (30001, 5000),
        (35000, 5000),
        (35001, 5500),
        (69999.99, 8500),
        (70000, 8500),
    ],
)
def test_management_cost_band_edges(spend: float, fee: float) -> None:
    assert management_cost(spend) == fee


@pytest.mark.parametrize("spend", [0, -100, 2499.99, 5000.5, 70000.01, 250000])
def test_management_cost_outside_bands_is_zero(spend: float) -> None:
    assert management_cost(spend) == 0.0


def test_bands_are_sorted_and_fee_rises_by_500() -> None:
    for lower, upper in zip(MANAGEMENT_FEE_BANDS, MANAGEMENT_FEE_BANDS[1:]):
        assert upper.min_spend == lower.max_spend + 1
        assert upper.fee == lower.fee + 500


def test_custom_band_table() -> None:
    bands = (FeeBand(0, 100, 5),)
    assert management_cost(0, bands) == 5.0
    assert management_cost(100.5, bands) == 0.0


def test_float_noise_on_a_band_ceiling_stays_in_band() -> None:
    assert management_cost(625000 * (7.2 / 100)) == 6000
    assert management_cost(10000.000000000002) == 2500
