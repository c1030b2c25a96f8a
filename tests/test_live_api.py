import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import make_token


def test_review_socket_streams_changes(client, factory):
    business = factory.business()
    for i in range(6):
        factory.review(business, minutes=i)
    viewer = factory.profile()

    url = f"/api/businesses/{business.id}/reviews/live?token={make_token(viewer.id)}"
    with client.websocket_connect(url) as ws:
        first = ws.receive_json()
        assert len(first["reviews"]) == 5
        assert first["has_more"] is True

        newest = factory.review(business, minutes=60, comment="fresh")
        update = ws.receive_json()
        assert update["reviews"][0]["id"] == newest.id
        assert update["reviews"][0]["comment"] == "fresh"

        ws.send_json({"action": "load_more"})
        more = ws.receive_json()
        assert len(more["reviews"]) == 7
        assert more["has_more"] is False


def test_review_socket_rejects_unknown_business(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/businesses/nope/reviews/live"):
            pass


def test_review_socket_rejects_bad_token(client, factory):
    business = factory.business()
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/businesses/{business.id}/reviews/live?token=garbage"):
            pass


def test_search_socket_answers_latest_query(client, factory):
    factory.business(name="CoffeeCo")
    factory.business(name="Cafe Nero")

    with client.websocket_connect("/api/search/live") as ws:
        ws.send_json({"q": "c"})
        ws.send_json({"q": "coffee"})
        reply = ws.receive_json()
        assert reply["q"] == "coffee"
        assert [r["name"] for r in reply["results"]] == ["CoffeeCo"]

        ws.send_json({"q": "  "})
        assert ws.receive_json() == {"q": "", "results": []}
