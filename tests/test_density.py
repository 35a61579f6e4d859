from branch_queue.density import DensityLevel, classify_count, classify_density, crowd_density
from branch_queue.models import TokenStatus

from conftest import FailingStore, put_entry


def test_low_below_two():
    d = classify_density(0, 0)
    assert (d.level, d.ratio, d.color) == (DensityLevel.LOW, "0.00", "green")
    assert classify_density(3, 2).level is DensityLevel.LOW


def test_band_edges_are_medium():
    assert classify_density(2, 1).level is DensityLevel.MEDIUM
    assert classify_density(2, 1).ratio == "2.00"
    assert classify_density(5, 1).level is DensityLevel.MEDIUM
    assert classify_density(10, 2).ratio == "5.00"


def test_just_above_five_is_high():
    d = classify_density(501, 100)
    assert d.level is DensityLevel.HIGH
    assert d.ratio == "5.01"
    assert d.color == "red"


def test_no_serving_counts_as_one_active_counter():
    d = classify_density(3, 0)
    assert d.level is DensityLevel.MEDIUM
    assert d.ratio == "3.00"
    assert d.to_message() == {"level": "MEDIUM", "ratio": "3.00", "color": "yellow"}


def test_branch_density_ignores_service_type(store):
    for i, svc in enumerate(["consultation", "payment", "checkup", "payment", "consultation", "checkup"]):
        put_entry(store, f"w{i}", i + 1, service_type=svc)
    put_entry(store, "s1", 10, status=TokenStatus.SERVING)
    put_entry(store, "elsewhere", 1, branch_id="branch2")

    d = crowd_density(store, "branch1")
    assert d.level is DensityLevel.HIGH
    assert d.ratio == "6.00"


def test_store_failure_reports_quiet_branch():
    d = crowd_density(FailingStore(), "branch1")
    assert d.to_message() == {"level": "LOW", "ratio": "0.00", "color": "green"}


def test_count_bands_are_inclusive_at_thresholds():
    assert classify_count(1, medium=2, high=5) is DensityLevel.LOW
    assert classify_count(2, medium=2, high=5) is DensityLevel.MEDIUM
    assert classify_count(4, medium=2, high=5) is DensityLevel.MEDIUM
    assert classify_count(5, medium=2, high=5) is DensityLevel.HIGH
    assert classify_count(5, medium=6, high=15) is DensityLevel.LOW
