import datetime as dt
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import lottoevent.config as config_module
import lottoevent.db as db_module
from lottoevent.models import Event, utcnow
from lottoevent.services.sms import SmsSender
from lottoevent.tests.base import extract_code


class LottoRoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        os.environ["DATABASE_URL"] = f"sqlite:///{Path(self._tmpdir.name) / 'routes.db'}"
        os.environ["ADMIN_API_KEY"] = "test-admin"
        config_module.load_settings.cache_clear()

        from lottoevent.app import create_app

        self.app = create_app()
        self.client = self.app.test_client()

        self.sender = mock.Mock(spec=SmsSender)
        patcher = mock.patch("lottoevent.routes.verification.get_sms_sender", return_value=self.sender)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        db_module.SessionLocal.remove()
        db_module.engine.dispose()
        config_module.load_settings.cache_clear()
        os.environ.pop("DATABASE_URL", None)
        os.environ.pop("ADMIN_API_KEY", None)
        self._tmpdir.cleanup()

    def _headers(self):
        return {"X-Admin-Token": "test-admin"}

    def _create_event(self, pool=None, start_in=dt.timedelta(hours=1)):
        start = utcnow() + start_in
        payload = {
            "name": "Launch lotto",
            "start_at": start.isoformat(),
            "end_at": (start + dt.timedelta(hours=1)).isoformat(),
            "announce_start_at": (start + dt.timedelta(hours=2)).isoformat(),
            "announce_end_at": (start + dt.timedelta(hours=3)).isoformat(),
        }
        if pool is not None:
            payload["pool"] = pool
        resp = self.client.post("/admin/api/events", json=payload, headers=self._headers())
        self.assertEqual(resp.status_code, 201, resp.get_json())
        return resp.get_json()

    def _shift_event(self, event_id: int, hours: float) -> None:
        delta = dt.timedelta(hours=hours)
        with db_module.session_scope() as session:
            event = session.get(Event, event_id)
            event.start_at -= delta
            event.end_at -= delta
            event.announce_start_at -= delta
            event.announce_end_at -= delta

    def _verify(self, event_id: int, phone: str) -> int:
        resp = self.client.post("/api/verification/send", json={"event_id": event_id, "phone_number": phone})
        self.assertEqual(resp.status_code, 200, resp.get_json())
        verification_id = resp.get_json()["verification_id"]
        resp = self.client.post(
            "/api/verification/verify",
            json={"verification_id": verification_id, "code": extract_code(self.sender)},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"verified": True})
        return verification_id

    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"status": "ok"})

    def test_admin_requires_token(self) -> None:
        resp = self.client.post("/admin/api/events", json={})
        self.assertEqual(resp.status_code, 401)

    def test_create_event_rejects_bad_windows(self) -> None:
        start = utcnow()
        payload = {
            "name": "Broken",
            "start_at": start.isoformat(),
            "end_at": (start + dt.timedelta(hours=2)).isoformat(),
            "announce_start_at": (start + dt.timedelta(hours=2)).isoformat(),
            "announce_end_at": (start + dt.timedelta(hours=3)).isoformat(),
        }
        resp = self.client.post("/admin/api/events", json=payload, headers=self._headers())
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["kind"], "ValidationError")

    def test_create_event_with_pool_and_stats(self) -> None:
        body = self._create_event(pool={"size": 10, "winner_count": 3})
        self.assertEqual(body["event"]["phase"], "READY")
        self.assertEqual(body["event"]["pool_size"], 10)
        self.assertEqual(body["pool"]["winner_count"], 3)

        resp = self.client.get(f"/admin/api/events/{body['event']['id']}/stats", headers=self._headers())
        self.assertEqual(resp.status_code, 200)
        stats = resp.get_json()
        self.assertEqual(stats["slot_count"], 10)
        self.assertEqual(stats["winning_slots"], 3)
        self.assertEqual(stats["remaining_count"], 10)

    def test_failed_create_with_pool_leaves_no_event(self) -> None:
        start = utcnow() + dt.timedelta(hours=1)
        payload = {
            "name": "Oversubscribed",
            "start_at": start.isoformat(),
            "end_at": (start + dt.timedelta(hours=1)).isoformat(),
            "announce_start_at": (start + dt.timedelta(hours=2)).isoformat(),
            "announce_end_at": (start + dt.timedelta(hours=3)).isoformat(),
            "pool": {"size": 5, "winner_count": 9},
        }
        resp = self.client.post("/admin/api/events", json=payload, headers=self._headers())
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["code"], "InvalidConfiguration")

        started = dict(payload, pool={"size": 5, "winner_count": 1})
        started["start_at"] = (start - dt.timedelta(hours=1, minutes=30)).isoformat()
        resp = self.client.post("/admin/api/events", json=started, headers=self._headers())
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["code"], "EventNotReady")

        self.assertEqual(self.client.get("/api/events").get_json()["total"], 0)

    def test_generate_pool_twice_conflicts(self) -> None:
        event_id = self._create_event()["event"]["id"]
        url = f"/admin/api/events/{event_id}/pool"

        first = self.client.post(url, json={"size": 5, "winner_count": 1}, headers=self._headers())
        self.assertEqual(first.status_code, 201)
        second = self.client.post(url, json={"size": 5, "winner_count": 1}, headers=self._headers())
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.get_json()["code"], "PoolAlreadyExists")

        bad = self._create_event()["event"]["id"]
        resp = self.client.post(
            f"/admin/api/events/{bad}/pool", json={"size": 5, "winner_count": 6}, headers=self._headers()
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["code"], "InvalidConfiguration")

    def test_full_participation_flow(self) -> None:
        event_id = self._create_event(pool={"size": 3, "winner_count": 1})["event"]["id"]
        self._shift_event(event_id, 1.5)

        active = self.client.get("/api/events/active").get_json()
        self.assertTrue(active["active"])
        self.assertEqual(active["event"]["id"], event_id)

        phone = "010-4444-5555"
        verification_id = self._verify(event_id, phone)
        payload = {"event_id": event_id, "phone_number": phone, "verification_id": verification_id}
        resp = self.client.post("/api/lotto/participate", json=payload)
        self.assertEqual(resp.status_code, 200, resp.get_json())
        ticket = resp.get_json()
        self.assertEqual(ticket["phone_last4"], "5555")
        self.assertEqual(len(ticket["lotto_numbers"]), 6)

        retry = self.client.post("/api/lotto/participate", json=payload)
        self.assertEqual(retry.get_json(), ticket)

        self._shift_event(event_id, 2)
        announcing = self.client.get("/api/events/announcing").get_json()
        self.assertTrue(announcing["announcing"])

        result_payload = {"event_id": event_id, "phone_number": phone}
        first = self.client.post("/api/lotto/result", json=result_payload).get_json()
        self.assertTrue(first["first_check"])
        self.assertEqual(first["won"], ticket["won"])
        self.assertEqual(first["lotto_numbers"], ticket["lotto_numbers"])

        again = self.client.post("/api/lotto/result", json=result_payload).get_json()
        self.assertFalse(again["first_check"])
        self.assertEqual(again["won"], ticket["won"])
        self.assertNotIn("lotto_numbers", again)

    def test_participate_without_verification(self) -> None:
        event_id = self._create_event(pool={"size": 3, "winner_count": 1})["event"]["id"]
        self._shift_event(event_id, 1.5)

        handle = self.client.post(
            "/api/verification/send", json={"event_id": event_id, "phone_number": "01012341234"}
        ).get_json()
        resp = self.client.post(
            "/api/lotto/participate",
            json={"event_id": event_id, "phone_number": "01012341234", "verification_id": handle["verification_id"]},
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["code"], "NotVerified")

    def test_send_code_outside_active_phase(self) -> None:
        event_id = self._create_event()["event"]["id"]
        resp = self.client.post("/api/verification/send", json={"event_id": event_id, "phone_number": "01012341234"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["kind"], "PhaseError")
        self.sender.send.assert_not_called()

    def test_wrong_code_and_invalid_phone(self) -> None:
        event_id = self._create_event()["event"]["id"]
        self._shift_event(event_id, 1.5)

        resp = self.client.post("/api/verification/send", json={"event_id": event_id, "phone_number": "abc"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["kind"], "ValidationError")

        handle = self.client.post(
            "/api/verification/send", json={"event_id": event_id, "phone_number": "01012341234"}
        ).get_json()
        code = extract_code(self.sender)
        wrong = "0" * 6 if code != "0" * 6 else "1" * 6
        resp = self.client.post(
            "/api/verification/verify", json={"verification_id": handle["verification_id"], "code": wrong}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json()["code"], "Mismatch")

    def test_event_lookup_and_listing(self) -> None:
        created = [self._create_event()["event"]["id"] for _ in range(3)]

        resp = self.client.get(f"/api/events/{created[0]}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["phase"], "READY")

        missing = self.client.get("/api/events/9999")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["code"], "EventNotFound")

        page = self.client.get("/api/events?page=2&size=2").get_json()
        self.assertEqual(page["total"], 3)
        self.assertEqual(page["total_pages"], 2)
        self.assertEqual(len(page["events"]), 1)

        self.assertEqual(self.client.get("/api/events/active").get_json(), {"active": False})

    def test_result_before_announcement(self) -> None:
        event_id = self._create_event(pool={"size": 3, "winner_count": 1})["event"]["id"]
        resp = self.client.post("/api/lotto/result", json={"event_id": event_id, "phone_number": "01012341234"})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.get_json()["code"], "ResultsNotOpen")


if __name__ == "__main__":
    unittest.main()
