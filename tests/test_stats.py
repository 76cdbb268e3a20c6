from conftest import START, make_order
from models.staff import Agent, Department
from services.stats import compute_agent_stats, compute_stats


def _orders():
    return [
        make_order("T1"),
        make_order("T2", status="in-progress", assigned_to="Alice"),
        make_order("T3", status="completed", assigned_to="Alice", completed_at=START),
        make_order("T4", status="completed", assigned_to="Ghost", completed_at=START),
    ]


def test_compute_stats_counts():
    stats = compute_stats(_orders())
    assert stats.total_orders == 4
    assert stats.completed_orders == 2
    assert stats.pending_orders == 2


def test_compute_stats_empty():
    stats = compute_stats([])
    assert (stats.total_orders, stats.completed_orders, stats.pending_orders) == (0, 0, 0)


def test_compute_stats_accepts_generators():
    stats = compute_stats(order for order in _orders())
    assert stats.total_orders == stats.completed_orders + stats.pending_orders


def test_agent_stats_are_recomputed_from_orders():
    departments = [
        Department(
            name="Support",
            agents=[
                Agent(name="Alice", total_orders=99, completed_orders=99),
                Agent(name="Bob", total_orders=5),
            ],
        )
    ]

    result = compute_agent_stats(departments, _orders())

    alice = result[0].agent("Alice")
    bob = result[0].agent("Bob")
    assert (alice.total_orders, alice.completed_orders) == (2, 1)
    assert (bob.total_orders, bob.completed_orders) == (0, 0)
    # Input is left untouched
    assert departments[0].agent("Alice").total_orders == 99
