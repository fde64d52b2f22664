"""
Tests for the sensor tracker.

Covers:
- register-vs-update decision and at-most-one registration under races
- per-sensor ordering of reports
- metadata changes driven by sink responses
- error isolation (transport failures, empty bodies, missing secret)
- consumer loops, producer retirement and shutdown
"""
import queue
import threading

import pytest

from hassagent.codec import RequestType
from hassagent.errors import MissingSecretError, UnknownIDError
from hassagent.models import ResponseOutcome
from hassagent.sensors.interface import CLOSED, SensorUpdate
from hassagent.tracker import SensorTracker

from conftest import FakeClient


def _update(sensor_id, value, name=None):
    return SensorUpdate(id=sensor_id, name=name or sensor_id, state=value)


class TestDecision:

    def test_first_update_registers(self, tracker, registry, client):
        assert tracker.handle(_update("battery_level", 87)) is RequestType.REGISTER_SENSOR
        assert tracker.wait_idle(5)

        assert client.types_for("battery_level") == [RequestType.REGISTER_SENSOR]
        meta = registry.get("battery_level").metadata
        assert meta.registered is True
        assert meta.disabled is False

    def test_known_sensor_updates(self, tracker, registry, client):
        tracker.handle(_update("battery_level", 87))
        assert tracker.wait_idle(5)

        assert tracker.handle(_update("battery_level", 86)) is RequestType.UPDATE_SENSOR_STATES
        assert tracker.wait_idle(5)

        assert client.types_for("battery_level") == [
            RequestType.REGISTER_SENSOR,
            RequestType.UPDATE_SENSOR_STATES,
        ]
        assert registry.get("battery_level").state == 86

    def test_racing_first_updates_register_once(self, registry):
        client = FakeClient(delay=0.01)
        tracker = SensorTracker(registry, client)
        barrier = threading.Barrier(16)

        def producer(value):
            barrier.wait()
            tracker.handle(_update("battery_level", value))

        threads = [threading.Thread(target=producer, args=(v,)) for v in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.wait_idle(10)

        types = client.types_for("battery_level")
        assert len(types) == 16
        assert types.count(RequestType.REGISTER_SENSOR) == 1
        assert types[0] is RequestType.REGISTER_SENSOR
        assert len(registry) == 1

    def test_failed_registration_is_retried_by_next_update(self, registry):
        client = FakeClient(body=b'{"success":false}')
        tracker = SensorTracker(registry, client)

        tracker.handle(_update("battery_level", 87))
        assert tracker.wait_idle(5)
        assert registry.get("battery_level").metadata.registered is False

        client.body = b'{"success":true}'
        tracker.handle(_update("battery_level", 86))
        assert tracker.wait_idle(5)

        assert client.types_for("battery_level") == [RequestType.REGISTER_SENSOR] * 2
        assert registry.get("battery_level").metadata.registered is True


class TestOrdering:

    def test_reports_for_one_sensor_follow_emission_order(self, registry):
        client = FakeClient(delay=0.02)
        tracker = SensorTracker(registry, client)

        for v in range(6):
            tracker.handle(_update("cpu_usage", v))
        assert tracker.wait_idle(10)

        assert client.values_for("cpu_usage") == list(range(6))
        assert client.types_for("cpu_usage")[0] is RequestType.REGISTER_SENSOR
        assert set(client.types_for("cpu_usage")[1:]) == {RequestType.UPDATE_SENSOR_STATES}

    def test_slow_sensor_does_not_delay_others(self, registry):
        release = threading.Event()

        def body(request):
            if request.state.id == "slow":
                release.wait(5)
            return b'{"success":true}'

        client = FakeClient(body=body)
        tracker = SensorTracker(registry, client)
        tracker.handle(_update("slow", 1))
        tracker.handle(_update("fast", 1))

        assert not tracker.wait_idle(0.5)
        assert registry.get("fast").metadata.registered is True
        assert registry.get("slow").metadata.registered is False
        release.set()
        assert tracker.wait_idle(5)
        assert registry.get("slow").metadata.registered is True


class TestResponses:

    def test_battery_level_registration_scenario(self, tracker, registry, client):
        tracker.handle(_update("battery_level", 87, name="Battery Level"))
        assert tracker.wait_idle(5)

        state = registry.get("battery_level")
        assert state.state == 87
        assert state.metadata.registered is True
        assert state.metadata.disabled is False

    def test_update_clears_disabled(self, registry):
        client = FakeClient(body=b'{"wifi_strength":{"success":true}}')
        tracker = SensorTracker(registry, client)
        registry.add(_update("wifi_strength", -50))
        registry.apply_outcome("wifi_strength", ResponseOutcome(registered=True, disabled=True))

        tracker.handle(_update("wifi_strength", -42))
        assert tracker.wait_idle(5)

        assert client.types_for("wifi_strength") == [RequestType.UPDATE_SENSOR_STATES]
        state = registry.get("wifi_strength")
        assert state.state == -42
        assert state.metadata.registered is True
        assert state.metadata.disabled is False

    def test_is_disabled_disables(self, registry):
        client = FakeClient(body=b'{"success":true,"wifi_strength":{"success":true,"is_disabled":true}}')
        tracker = SensorTracker(registry, client)

        tracker.handle(_update("wifi_strength", -42))
        assert tracker.wait_idle(5)
        assert registry.get("wifi_strength").metadata.disabled is True

    def test_numeric_error_code_still_disables(self, registry):
        client = FakeClient(
            body=b'{"wifi":{"success":false,"error":{"code":500,"message":"oops"},"is_disabled":true}}'
        )
        tracker = SensorTracker(registry, client)

        tracker.handle(_update("wifi", -42))
        assert tracker.wait_idle(5)
        assert registry.get("wifi").metadata.disabled is True

    def test_empty_body_leaves_metadata(self, registry):
        client = FakeClient(body=b"{}")
        tracker = SensorTracker(registry, client)
        registry.add(_update("wifi_strength", -50))
        registry.apply_outcome("wifi_strength", ResponseOutcome(registered=True, disabled=True))
        before = registry.get("wifi_strength").metadata

        tracker.handle(_update("wifi_strength", -42))
        assert tracker.wait_idle(5)

        assert registry.get("wifi_strength").metadata == before

    def test_per_sensor_error_keeps_metadata(self, registry):
        client = FakeClient(
            body=b'{"wifi_strength":{"success":false,"error":{"code":"invalid_format","message":"bad"}}}'
        )
        tracker = SensorTracker(registry, client)
        registry.add(_update("wifi_strength", -50))
        registry.apply_outcome("wifi_strength", ResponseOutcome(registered=True))

        tracker.handle(_update("wifi_strength", -42))
        assert tracker.wait_idle(5)

        meta = registry.get("wifi_strength").metadata
        assert meta.registered is True
        assert meta.disabled is False


class TestErrors:

    def test_transport_failure_is_contained(self, registry, failing_client):
        tracker = SensorTracker(registry, failing_client)
        tracker.handle(_update("battery_level", 87))
        tracker.handle(_update("uptime", 1.0))
        assert tracker.wait_idle(5)

        assert registry.get("battery_level").metadata.registered is False
        assert registry.get("uptime").state == 1.0
        # tracker still usable
        assert tracker.handle(_update("battery_level", 80)) is RequestType.UPDATE_SENSOR_STATES
        assert tracker.wait_idle(5)

    def test_missing_secret_is_contained(self, registry):
        client = FakeClient(body=MissingSecretError("no secret"))
        tracker = SensorTracker(registry, client)
        tracker.handle(_update("battery_level", 87))
        assert tracker.wait_idle(5)
        assert registry.get("battery_level").metadata.registered is False

    def test_unexpected_error_does_not_stop_reporting(self, registry):
        answers = [ValueError("boom"), b'{"success":true}']

        def body(request):
            return answers.pop(0) if answers else b'{"success":true}'

        client = FakeClient(body=body)
        tracker = SensorTracker(registry, client)
        tracker.handle(_update("battery_level", 87))
        assert tracker.wait_idle(5)
        tracker.handle(_update("battery_level", 86))
        assert tracker.wait_idle(5)

        assert client.values_for("battery_level") == [87, 86]
        assert client.types_for("battery_level") == [RequestType.REGISTER_SENSOR] * 2
        assert registry.get("battery_level").metadata.registered is True


class TestLifecycle:

    def test_consumes_producers_until_closed(self, tracker, registry, client):
        q1, q2 = queue.Queue(), queue.Queue()
        for v in (1, 2, 3):
            q1.put(_update("memory_used", v))
        q2.put(_update("current_users", 2))
        q2.put("not an update")
        q1.put(CLOSED)
        q2.put(CLOSED)

        tracker.start(q1, q2)
        tracker.join(timeout=5)
        assert tracker.wait_idle(5)

        assert registry.get("memory_used").state == 3
        assert registry.get("current_users").state == 2
        assert client.types_for("current_users") == [RequestType.REGISTER_SENSOR]
        assert len(client.types_for("memory_used")) == 3

    def test_stop_ends_consumers_and_drops_new_work(self, tracker, registry, client):
        q = queue.Queue()
        tracker.start(q)
        tracker.stop()
        tracker.join(timeout=5)
        assert tracker.stopped

        q.put(_update("battery_level", 87))
        tracker.handle(_update("uptime", 1.0))
        assert tracker.wait_idle(1)

        assert client.sent == []
        assert not registry.exists("battery_level")

    def test_read_only_views(self, tracker):
        tracker.handle(_update("b", 1))
        tracker.handle(_update("a", 2))
        assert tracker.wait_idle(5)
        assert tracker.sensor_list() == ["a", "b"]
        assert tracker.sensor_value("a").state == 2
        with pytest.raises(UnknownIDError):
            tracker.sensor_value("missing")
