import pytest

from branch_queue.counters import DEFAULT_COUNTERS, CounterAllocator
from branch_queue.errors import StoreFailure
from branch_queue.models import Counter, TokenStatus

from conftest import FailingStore, put_entry


def test_unconfigured_branch_uses_default_counters(store):
    alloc = CounterAllocator(store)
    assert alloc.counters_for_branch("nowhere") == DEFAULT_COUNTERS
    assert alloc.allocate("nowhere", "payment").id == "C1"


def test_ties_go_to_first_defined_counter(store):
    alloc = CounterAllocator(store)
    # branch1: consultation is handled by C1 and C2
    assert alloc.allocate("branch1", "consultation").id == "C1"


def test_prefers_least_loaded_eligible_counter(store):
    put_entry(store, "s1", 1, status=TokenStatus.SERVING, assigned_counter="C1")
    put_entry(store, "s2", 2, status=TokenStatus.SERVING, assigned_counter="C1", service_type="checkup")
    put_entry(store, "s3", 3, status=TokenStatus.SERVING, assigned_counter="C2")
    # Waiting tokens and other branches do not count as load.
    put_entry(store, "w1", 4, assigned_counter="C2")
    put_entry(store, "o1", 1, branch_id="branch2", status=TokenStatus.SERVING, assigned_counter="C2")

    alloc = CounterAllocator(store)
    assert alloc.allocate("branch1", "consultation").id == "C2"


def test_no_eligible_counter_falls_back_to_first_without_reading_store():
    # A failing store proves the fallback never queries.
    alloc = CounterAllocator(FailingStore())
    chosen = alloc.allocate("branch1", "x-ray")
    assert chosen.id == "C1"
    assert chosen.name == "Counter 1"


def test_store_failure_propagates():
    alloc = CounterAllocator(FailingStore())
    with pytest.raises(StoreFailure):
        alloc.allocate("branch1", "consultation")


def test_custom_layouts(store):
    layouts = {"lab": [Counter("L1", "Lab 1", frozenset({"blood"})), Counter("L2", "Lab 2", frozenset({"blood"}))]}
    put_entry(store, "s1", 1, branch_id="lab", status=TokenStatus.SERVING, assigned_counter="L1")
    alloc = CounterAllocator(store, layouts)
    assert alloc.allocate("lab", "blood").id == "L2"


def test_counter_status_reports_load(store):
    put_entry(store, "s1", 1, branch_id="branch2", status=TokenStatus.SERVING, assigned_counter="C3")
    status = {c["id"]: c for c in CounterAllocator(store).counter_status("branch2")}
    assert status["C3"]["currently_serving"] == 1
    assert status["C3"]["status"] == "busy"
    assert status["C1"]["status"] == "available"
    assert status["C1"]["services"] == ["checkup", "consultation"]
