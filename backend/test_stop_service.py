"""
Tests for stop_service.py - arrivals, appointments, departures and dashboard rows
"""

import pytest
from datetime import datetime, timedelta, timezone

from detention.rates import flat_rate
from detention.thresholds import ConfigError
from stop_service import StopService
from stores.contracts import NotFoundError
from stores.memory_stores import InMemoryFleetStore

NINE_AM = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def service():
    return StopService(InMemoryFleetStore())


@pytest.fixture
def driver(service):
    return service.add_driver("Pat Doyle", "T-114", "Dean")


class TestUpdateLocation:

    def test_first_location_opens_stop(self, service, driver):
        stop = service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        assert stop.is_open
        assert stop.stop_type == "rail"
        assert stop.timestamp == NINE_AM

    def test_defaults_to_regular(self, service, driver):
        assert service.update_location(driver.id, "Gary, IN").stop_type == "regular"

    def test_second_location_moves_open_stop(self, service, driver):
        first = service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        moved = service.update_location(driver.id, "Gary, IN dock 4", latitude=41.6, longitude=-87.3)
        assert moved.id == first.id
        assert moved.location == "Gary, IN dock 4"
        assert moved.timestamp == NINE_AM
        assert len(service.fleet.list_open_stops()) == 1

    def test_open_stop_changes_type(self, service, driver):
        service.update_location(driver.id, "Gary, IN")
        assert service.update_location(driver.id, "Gary, IN", stop_type="drop-hook").stop_type == "drop-hook"

    def test_unknown_stop_type(self, service, driver):
        with pytest.raises(ConfigError):
            service.update_location(driver.id, "Gary, IN", stop_type="overnight")

    def test_unknown_driver(self, service):
        with pytest.raises(NotFoundError):
            service.update_location("ghost", "Gary, IN")


class TestAppointmentsAndDepartures:

    def test_set_appointment_changes_alert_key(self, service, driver):
        stop = service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        updated = service.set_appointment(driver.id, NINE_AM + timedelta(hours=1), stop_type="multi-stop")
        assert updated.alert_key != stop.alert_key
        assert updated.stop_type == "multi-stop"

    def test_appointment_requires_open_stop(self, service, driver):
        with pytest.raises(NotFoundError):
            service.set_appointment(driver.id, NINE_AM)

    def test_departure_freezes_final_detention(self, service, driver):
        service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        closed = service.record_departure(driver.id, NINE_AM + timedelta(minutes=100))
        assert not closed.is_open
        assert closed.final_detention_minutes == 40
        assert closed.final_detention_cost == 50.0

    def test_departure_before_threshold(self, service, driver):
        service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        closed = service.record_departure(driver.id, NINE_AM + timedelta(minutes=45))
        assert closed.final_detention_minutes == 0
        assert closed.final_detention_cost == 0

    def test_departure_uses_configured_rate(self):
        service = StopService(InMemoryFleetStore(), rate_fn=flat_rate(2.0))
        driver = service.add_driver("Pat Doyle", "T-114", "Dean")
        service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        closed = service.record_departure(driver.id, NINE_AM + timedelta(minutes=100))
        assert closed.final_detention_cost == 80.0

    def test_departure_requires_open_stop(self, service, driver):
        service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        service.record_departure(driver.id, NINE_AM + timedelta(minutes=10))
        with pytest.raises(NotFoundError):
            service.record_departure(driver.id)

    def test_new_arrival_after_departure(self, service, driver):
        first = service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        service.record_departure(driver.id, NINE_AM + timedelta(minutes=10))
        second = service.update_location(driver.id, "Joliet, IL")
        assert second.id != first.id
        assert second.is_open


class TestDriverViews:

    def test_views_classify_current_stop(self, service, driver):
        service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        idle = service.add_driver("Sam Ortiz", "T-200", "Matt")

        views = {v.driver.id: v for v in service.driver_views(now=NINE_AM + timedelta(minutes=75))}
        assert views[driver.id].status == "detention"
        assert views[driver.id].detention_minutes == 15
        assert views[driver.id].detention_cost == 18.75
        assert views[idle.id].status == "active"
        assert views[idle.id].duration == "Standby"

    def test_views_filtered_by_dispatcher(self, service, driver):
        service.add_driver("Sam Ortiz", "T-200", "Matt")
        views = service.driver_views(now=NINE_AM, dispatcher="Dean")
        assert [v.driver.name for v in views] == ["Pat Doyle"]

    def test_completed_stop_shown_within_window(self, service, driver):
        service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        service.record_departure(driver.id, NINE_AM + timedelta(minutes=100))
        view = service.driver_view(driver.id, now=NINE_AM + timedelta(minutes=130))
        assert view.status == "completed"
        assert view.detention_minutes == 40
        assert service.driver_view(driver.id, now=NINE_AM + timedelta(minutes=161)).status == "active"

    def test_view_to_dict(self, service, driver):
        service.update_location(driver.id, "Gary, IN", arrived_at=NINE_AM)
        doc = service.driver_view(driver.id, now=NINE_AM + timedelta(minutes=30)).to_dict()
        assert doc["name"] == "Pat Doyle"
        assert doc["status"] == "at-stop"
        assert doc["current_location"]["location"] == "Gary, IN"

    def test_unknown_driver_view(self, service):
        with pytest.raises(NotFoundError):
            service.driver_view("ghost")


class TestRoster:

    def test_add_driver_requires_fields(self, service):
        with pytest.raises(ValueError):
            service.add_driver("", "T-1", "Dean")

    def test_dispatchers_sorted_unique(self, service):
        service.add_driver("Pat Doyle", "T-114", "Dean")
        service.add_driver("Sam Ortiz", "T-200", "Matt")
        service.add_driver("Lee Park", "T-300", "Dean")
        assert service.dispatchers() == ["Dean", "Matt"]

    def test_dispatcher_ids_include_inactive(self, service, driver):
        service.deactivate_driver(driver.id)
        assert service.driver_ids_for_dispatcher("Dean") == [driver.id]

    def test_update_driver(self, service, driver):
        updated = service.update_driver(driver.id, truck_number=" T-200 ", dispatcher="Matt")
        assert updated.name == "Pat Doyle"
        assert updated.truck_number == "T-200"
        assert service.fleet.get_driver(driver.id).dispatcher == "Matt"

    def test_update_driver_no_changes(self, service, driver):
        assert service.update_driver(driver.id) == driver

    def test_update_driver_rejects_blank_name(self, service, driver):
        with pytest.raises(ValueError, match="name"):
            service.update_driver(driver.id, name="  ")

    def test_update_unknown_driver(self, service):
        with pytest.raises(NotFoundError):
            service.update_driver("ghost", name="Sam")


class TestResetDriver:

    def test_reset_open_stop(self, service, driver):
        stop = service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        service.set_appointment(driver.id, NINE_AM + timedelta(hours=1))

        reset = service.reset_driver(driver.id)
        assert reset.id == stop.id
        assert reset.stop_type == "regular"
        assert reset.appointment_time is None
        assert reset.timestamp == NINE_AM
        assert reset.location == "Gary, IN"

    def test_reset_reopens_closed_stop(self, service, driver):
        service.update_location(driver.id, "Gary, IN", stop_type="rail", arrived_at=NINE_AM)
        service.record_departure(driver.id, NINE_AM + timedelta(minutes=100))

        reset = service.reset_driver(driver.id)
        assert reset.is_open
        assert reset.final_detention_minutes is None
        assert reset.final_detention_cost is None
        assert service.fleet.list_open_stops() == [reset]

    def test_reset_without_stop(self, service, driver):
        with pytest.raises(NotFoundError):
            service.reset_driver(driver.id)
