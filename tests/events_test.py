import json

from fastapi import status
from data.database import Event
from config import config


def test_record_conversion(client, db_session, create_experiment):
    create_experiment()
    evaluation = client.post("/evaluate").json()

    payload = {
        "experiment_id": evaluation["experiment_id"],
        "variant_id": evaluation["variant_id"],
        "data": {"plan": "pro"}
    }
    response = client.post("/events/conversion", json=payload)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "success"
    assert response.json()["task_id"]

    visitor_id = client.cookies.get(config.visitor_cookie_name)
    event = db_session.query(Event).filter(Event.visitor_id == visitor_id, Event.type == "conversion").one()
    assert event.variant_id == evaluation["variant_id"]
    assert json.loads(event.properties_json) == {"plan": "pro"}


def test_record_click(client, db_session):
    response = client.post("/events/click", json={"experiment_id": 1, "variant_id": 2, "element": "hero_cta"})
    assert response.status_code == status.HTTP_200_OK

    # a visitor id is minted for first-time visitors
    visitor_id = client.cookies.get(config.visitor_cookie_name)
    assert visitor_id
    event = db_session.query(Event).filter(Event.visitor_id == visitor_id).one()
    assert event.type == "click"
    assert json.loads(event.properties_json) == {"element": "hero_cta"}


def test_click_requires_element(client):
    response = client.post("/events/click", json={"experiment_id": 1, "variant_id": 2})
    assert response.status_code == 422


def test_conversion_without_data(client, db_session):
    response = client.post("/events/conversion", json={"experiment_id": 1, "variant_id": 2})
    assert response.status_code == status.HTTP_200_OK

    event = db_session.query(Event).filter(Event.type == "conversion").one()
    assert event.properties_json is None
