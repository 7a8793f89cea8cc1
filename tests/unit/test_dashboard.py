from routes.dashboard_routes import status_distribution


def test_status_distribution_orders_by_count():
    distribution = status_distribution({"DRAFT": 1, "POSTED": 3, "DISAPPROVED": 1})

    assert [row["status"] for row in distribution] == ["POSTED", "DISAPPROVED", "DRAFT"]
    assert distribution[0] == {"status": "POSTED", "count": 3, "percentage": 60}
    assert distribution[1]["percentage"] == 20


def test_status_distribution_empty():
    assert status_distribution({}) == []
