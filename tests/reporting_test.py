from datetime import datetime, timedelta, timezone

from fastapi import status
from data.database import Assignment, Event, Experiment, Variant


def seed_traffic(db_session, experiment_id, variant_id, visitors, conversions, assigned_at, prefix=""):
    """Assign ``visitors`` visitors to the variant, the first ``conversions`` of them convert."""
    rows = []
    for i in range(visitors):
        visitor_id = f"{prefix}{variant_id}-visitor-{i}"
        rows.append(Assignment(experiment_id=experiment_id, variant_id=variant_id,
                               visitor_id=visitor_id, assigned_at=assigned_at))
        if i < conversions:
            rows.append(Event(visitor_id=visitor_id, experiment_id=experiment_id, variant_id=variant_id,
                              type="conversion", timestamp=assigned_at + timedelta(minutes=5)))
    db_session.add_all(rows)
    db_session.commit()


def _naive_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def test_results_with_winner(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, variant_id = (v["id"] for v in experiment["variants"])
    assigned_at = _naive_now() - timedelta(days=1)
    seed_traffic(db_session, experiment["id"], control_id, 1000, 100, assigned_at)
    seed_traffic(db_session, experiment["id"], variant_id, 1000, 150, assigned_at)

    response = client.get(f"/experiments/{experiment['id']}/results", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["winner"] == variant_id
    assert data["statistical_significance"] is True
    assert data["improvement_percentage"] == 50.0
    assert data["total_visitors"] == 2000
    assert data["total_conversions"] == 250
    assert data["required_sample_size"] is None
    rates = {r["variant_id"]: r["conversion_rate"] for r in data["variant_results"]}
    assert rates == {control_id: 10.0, variant_id: 15.0}


def test_results_count_converted_visitors_once(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, variant_id = (v["id"] for v in experiment["variants"])
    assigned_at = _naive_now() - timedelta(hours=2)
    seed_traffic(db_session, experiment["id"], control_id, 10, 2, assigned_at)
    # a repeat conversion from the same visitor, and one recorded before the assignment
    db_session.add_all([
        Event(visitor_id=f"{control_id}-visitor-0", experiment_id=experiment["id"], variant_id=control_id,
              type="conversion", timestamp=assigned_at + timedelta(minutes=30)),
        Event(visitor_id=f"{control_id}-visitor-5", experiment_id=experiment["id"], variant_id=control_id,
              type="conversion", timestamp=assigned_at - timedelta(minutes=30)),
    ])
    db_session.commit()

    data = client.get(f"/experiments/{experiment['id']}/results", headers=auth_headers).json()
    control = next(r for r in data["variant_results"] if r["variant_id"] == control_id)
    assert control["visitors"] == 10
    assert control["conversions"] == 2


def test_results_window(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, variant_id = (v["id"] for v in experiment["variants"])
    seed_traffic(db_session, experiment["id"], control_id, 20, 2, _naive_now() - timedelta(days=30))
    seed_traffic(db_session, experiment["id"], variant_id, 10, 1, _naive_now() - timedelta(days=1))

    data = client.get(f"/experiments/{experiment['id']}/results", params={"last_day": 7},
                      headers=auth_headers).json()
    assert data["total_visitors"] == 10

    since = (_naive_now() - timedelta(days=60)).isoformat()
    data = client.get(f"/experiments/{experiment['id']}/results", params={"start_date": since},
                      headers=auth_headers).json()
    assert data["total_visitors"] == 30


def test_results_with_sample_size(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, _ = (v["id"] for v in experiment["variants"])
    seed_traffic(db_session, experiment["id"], control_id, 100, 10, _naive_now())

    data = client.get(f"/experiments/{experiment['id']}/results", params={"mde": 0.2},
                      headers=auth_headers).json()
    assert data["required_sample_size"] > 3000


def test_results_sample_size_unreachable_effect(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, _ = (v["id"] for v in experiment["variants"])
    seed_traffic(db_session, experiment["id"], control_id, 100, 90, _naive_now())

    # a 50% lift on a 90% baseline is past 100%
    response = client.get(f"/experiments/{experiment['id']}/results", params={"mde": 0.5},
                          headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["required_sample_size"] is None


def test_results_bad_start_date(client, auth_headers, create_experiment):
    experiment = create_experiment()
    response = client.get(f"/experiments/{experiment['id']}/results", params={"start_date": "yesterday"},
                          headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_results_without_control_is_null(client, db_session, auth_headers):
    experiment = Experiment(name="Legacy", status="active")
    db_session.add(experiment)
    db_session.flush()
    db_session.add(Variant(experiment_id=experiment.id, name="A", traffic_percentage=100))
    db_session.commit()

    response = client.get(f"/experiments/{experiment.id}/results", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() is None


def test_results_not_found(client, auth_headers):
    response = client.get("/experiments/9999/results", headers=auth_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_timeline(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, variant_id = (v["id"] for v in experiment["variants"])
    seed_traffic(db_session, experiment["id"], control_id, 30, 3, _naive_now() - timedelta(days=2))
    seed_traffic(db_session, experiment["id"], variant_id, 20, 4, _naive_now() - timedelta(days=2))
    seed_traffic(db_session, experiment["id"], variant_id, 5, 0, _naive_now() - timedelta(days=40), prefix="old-")

    response = client.get(f"/experiments/{experiment['id']}/timeline", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    entries = response.json()
    assert len(entries) == 8
    assert entries == sorted(entries, key=lambda e: e["date"])
    assert sum(e["visitors"] for e in entries) == 50
    assert sum(e["conversions"] for e in entries) == 7
    assert max(e["visitors"] for e in entries) == 50

    entries = client.get(f"/experiments/{experiment['id']}/timeline", params={"range": "all"},
                         headers=auth_headers).json()
    assert len(entries) == 366
    assert sum(e["visitors"] for e in entries) == 55


def test_timeline_bad_range(client, auth_headers, create_experiment):
    experiment = create_experiment()
    response = client.get(f"/experiments/{experiment['id']}/timeline", params={"range": "fortnight"},
                          headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_timeline_conversion_on_a_later_day(client, db_session, auth_headers, create_experiment):
    experiment = create_experiment()
    control_id, _ = (v["id"] for v in experiment["variants"])
    assigned_at = _naive_now() - timedelta(days=3)
    seed_traffic(db_session, experiment["id"], control_id, 1, 0, assigned_at)
    db_session.add(Event(visitor_id=f"{control_id}-visitor-0", experiment_id=experiment["id"], variant_id=control_id,
                         type="conversion", timestamp=assigned_at + timedelta(days=2)))
    db_session.commit()

    entries = client.get(f"/experiments/{experiment['id']}/timeline", headers=auth_headers).json()
    converted_day = [e for e in entries if e["conversions"]]
    assert len(converted_day) == 1
    assert converted_day[0]["visitors"] == 0

    response = client.get(f"/experiments/{experiment['id']}/results", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["total_conversions"] == 1
