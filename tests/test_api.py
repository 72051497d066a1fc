import pytest
from fastapi import WebSocketDisconnect

from pikarelay.runtime import runtime


def room_frames(room_id):
    room = runtime.rooms.get(room_id)
    return -1 if room is None else room.frame_counter


def test_banner(client):
    res = client.get("/")
    assert res.status_code == 200
    assert "Replay Server" in res.text


def test_missing_room_id_is_rejected_with_policy_close(client):
    with client.websocket_connect("/") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()
    assert exc_info.value.code == 1008
    assert runtime.rooms == {}


def test_relay_end_to_end(client, until):
    with client.websocket_connect("/ROOM1") as player:
        player.send_json({"type": "identify_player", "nicknames": ["pika", "chu"]})
        for value in (3, 7, 2):
            player.send_json({"type": "inputs", "value": value})
        assert until(lambda: room_frames("ROOM1") == 3)

        with client.websocket_connect("/spectate/ROOM1") as spectator:
            spectator.send_json({"type": "watch"})
            snapshot = spectator.receive_json()
            assert snapshot["type"] == "replay_pack"
            assert snapshot["pack"]["roomID"] == "ROOM1"
            assert snapshot["pack"]["nicknames"] == ["pika", "chu"]
            assert snapshot["pack"]["inputs"] == [3, 7, 2]

            player.send_json({"type": "inputs", "value": 9})
            assert spectator.receive_json() == {"type": "live_input", "value": 9}

            with client.websocket_connect("/ROOM1") as late:
                late.send_json({"type": "watch"})
                assert late.receive_json()["pack"]["inputs"] == [3, 7, 2, 9]


def test_malformed_frames_keep_connection_open(client, until):
    with client.websocket_connect("/ROOM2") as player:
        player.send_text("definitely not json")
        player.send_json({"type": "inputs", "value": "x"})
        player.send_json({"type": []})
        player.send_json({"type": {"nested": True}})
        player.send_json({"type": "identify_player"})
        player.send_json({"type": "inputs", "value": 5})
        assert until(lambda: room_frames("ROOM2") == 1)
        assert runtime.rooms["ROOM2"].inputs == [5]


def test_rooms_listing_with_cors(client, until):
    with client.websocket_connect("/ROOM3") as player:
        player.send_json(
            {
                "type": "identify_player",
                "nicknames": ["left", "right"],
                "partialPublicIPs": ["1.2.*.*", "5.6.*.*"],
            }
        )
        with client.websocket_connect("/ROOM4") as watcher:
            watcher.send_json({"type": "watch"})
            watcher.receive_json()
            assert until(lambda: runtime.rooms.get("ROOM3") is not None and runtime.rooms["ROOM3"].player is not None)

            res = client.get("/rooms", headers={"Origin": "http://example.com"})
            assert res.status_code == 200
            assert res.headers["access-control-allow-origin"] == "*"
            assert res.json() == {
                "rooms": [
                    {"id": "ROOM3", "nicknames": ["left", "right"], "ips": ["1.2.*.*", "5.6.*.*"]}
                ]
            }


def test_rooms_are_reclaimed_after_members_leave(client, until):
    with client.websocket_connect("/ROOM5") as player:
        player.send_json({"type": "identify_player"})
        with client.websocket_connect("/ROOM5") as spectator:
            spectator.send_json({"type": "watch"})
            spectator.receive_json()
            player.close()
            assert until(lambda: runtime.rooms["ROOM5"].player is None)
            assert "ROOM5" in runtime.rooms
    assert until(lambda: "ROOM5" not in runtime.rooms)


def test_player_room_reaped_after_grace(client, until):
    with client.websocket_connect("/ROOM6") as player:
        player.send_json({"type": "identify_player"})
        player.send_json({"type": "inputs", "value": 1})
        assert until(lambda: room_frames("ROOM6") == 1)
    assert until(lambda: "ROOM6" not in runtime.rooms)


def test_health_and_stats(client, until):
    with client.websocket_connect("/ROOM7") as player:
        player.send_json({"type": "identify_player"})
        player.send_json({"type": "inputs", "value": -1})
        assert until(lambda: room_frames("ROOM7") == 1)

        health = client.get("/api/health").json()
        assert health["ok"] is True
        assert health["activeRooms"] == 1

        stats = client.get("/api/ws-stats").json()
        assert stats["activeRooms"] == 1
        assert stats["stats"]["activeConnections"] >= 1
        assert stats["stats"]["peakConnections"] >= 1
        summary = stats["rooms"][0]
        assert summary["roomId"] == "ROOM7"
        assert summary["hasPlayer"] is True
        assert summary["gameEnded"] is True
        assert summary["endFrame"] == 0
