from augus.tutor.inactivity import ActivityClock, InactivityMonitor


def make_monitor(eligible=True):
	clock = ActivityClock()
	clock.reset(0.0)
	checkins = []
	state = {"eligible": eligible}
	monitor = InactivityMonitor(
		clock,
		is_eligible=lambda: state["eligible"],
		on_checkin=lambda: checkins.append(True),
		checkin_after=30.0,
	)
	return monitor, clock, checkins, state


def test_no_checkin_before_threshold():
	monitor, _, checkins, _ = make_monitor()
	assert monitor.check(15.0) is False
	assert monitor.check(29.9) is False
	assert checkins == []


def test_checkin_after_threshold_then_debounced():
	monitor, _, checkins, _ = make_monitor()
	assert monitor.check(30.0) is True
	# Still silent, but the previous check-in was too recent
	assert monitor.check(45.0) is False
	assert monitor.check(60.0) is True
	assert len(checkins) == 2


def test_activity_postpones_checkin():
	monitor, clock, checkins, _ = make_monitor()
	clock.touch(20.0)
	assert monitor.check(45.0) is False
	assert monitor.check(50.0) is True
	assert checkins == [True]


def test_ineligible_session_never_checks_in():
	monitor, _, checkins, state = make_monitor(eligible=False)
	assert monitor.check(100.0) is False
	state["eligible"] = True
	assert monitor.check(100.0) is True
	assert checkins == [True]
