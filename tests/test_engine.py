"""End-to-end scenarios: transport events in, surface pushes out."""

import asyncio

import pytest

from nowsync.engine import SyncEngine
from nowsync.errors import PlaybackError
from nowsync.lib.artwork import TrackMetadata
from nowsync.lib.transport import (
    DurationResolved,
    Ended,
    Paused,
    PositionUpdated,
    RateChanged,
    Seeked,
    Started,
)
from nowsync.session import PlaybackState

from conftest import FakeTransport, RecordingSurface, run

URL_A = "https://example.com/a.mp3"
URL_B = "https://example.com/b.mp3"


def test_duration_resolution_forces_exactly_one_push(engine, transport, surface):
    engine.load(URL_A)
    assert run(engine.play())
    engine.handle_event(Started())
    surface.clear()

    engine.handle_event(DurationResolved(300))

    assert len(surface.states) == 1
    assert surface.positions == [{"duration": 300.0, "position": 0.0, "rate": 1.0}]


def test_duration_in_position_sample_also_forces_push(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(0.2, None))
    assert surface.positions == []
    engine.handle_event(PositionUpdated(0.4, 300))
    assert surface.positions[-1]["duration"] == 300.0


def test_three_quick_seeks_collapse_to_one_push(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(12.0, 600))
    clock.advance(2)
    surface.clear()

    for target in (100, 105, 110):
        engine.router.seek_absolute(target)
        clock.advance(0.002)
    clock.advance(0.05)

    assert len(surface.positions) == 1
    assert surface.positions[0]["position"] == 110


def test_delayed_seek_completions_collapse_to_final_target(engine, transport, surface, clock):
    transport.auto_seek = False
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(12.0, 600))
    clock.advance(2)
    surface.clear()

    for target in (100, 105, 110):
        engine.router.seek_absolute(target)
    # Stale samples and completions for superseded targets
    engine.handle_event(PositionUpdated(12.1, 600))
    engine.handle_event(Seeked(100))
    engine.handle_event(Seeked(105))
    clock.advance(0.1)
    assert surface.positions == []

    engine.handle_event(Seeked(110))
    clock.advance(0.1)
    assert len(surface.positions) == 1
    assert surface.positions[0]["position"] == 110


def test_source_swap_cancels_pending_throttle_timer(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(10, 300))
    engine.handle_event(PositionUpdated(10.5, 300))  # dropped, window armed
    assert engine.scheduler.throttled

    engine.load(URL_B)
    assert clock.pending == 0
    surface.clear()
    clock.advance(5)
    assert surface.calls == []
    assert engine.session.source_id == URL_B
    assert engine.session.position == 0.0


def test_source_swap_cancels_pending_seek_push(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(10, 300))
    engine.router.seek_absolute(200)
    engine.load(URL_B)
    surface.clear()
    clock.advance(1)
    assert surface.calls == []


def test_superseded_play_resolution_is_ignored(clock, settings):
    transport = FakeTransport(hold_play=True)
    surface = RecordingSurface()
    engine = SyncEngine(transport, surface, clock=clock, settings=settings)

    async def scenario():
        engine.load(URL_A)
        first = asyncio.ensure_future(engine.play())
        await asyncio.sleep(0)
        engine.load(URL_B)
        second = asyncio.ensure_future(engine.play())
        await asyncio.sleep(0)
        assert transport.waiting_plays == 2

        transport.release_play(0, error=RuntimeError("aborted by new load"))
        assert await first is False
        transport.release_play(1)
        assert await second is True

    run(scenario())
    assert engine.session.source_id == URL_B
    assert engine.session.state is PlaybackState.LOADING


def test_spurious_reset_rearms_transport(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(42.3, 300))

    engine.handle_event(PositionUpdated(0, 300))

    assert engine.session.position == 42.3
    assert transport.seeks() == [42.3]
    # The rejected sample never reaches the UI
    assert all(label == "0:42" for _, label, _ in engine.progress_calls)
    assert surface.positions[-1]["position"] == 42.3


def test_stop_is_a_genuine_seek_to_zero(engine, transport, surface, clock):
    transport.auto_seek = False
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(80, 300))
    engine.router.stop()
    engine.handle_event(Paused())
    engine.handle_event(PositionUpdated(0, 300))
    clock.advance(0.1)
    assert engine.session.position == 0
    assert surface.positions[-1]["position"] == 0
    assert surface.states[-1] == "paused"


def test_pause_pushes_inside_throttle_window(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(5, 300))
    clock.advance(0.1)
    engine.handle_event(Paused())
    assert surface.states[-1] == "paused"


def test_rate_change_pushes_authoritative_position(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(30, 300))
    engine.handle_event(PositionUpdated(0, 300))  # spurious
    engine.handle_event(RateChanged(1.5))
    assert surface.positions[-1] == {"duration": 300.0, "position": 30.0, "rate": 1.5}


def test_zero_rate_is_ignored(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(RateChanged(0))
    assert engine.session.rate == 1.0


def test_progress_emitted_for_every_accepted_sample(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    for i in range(10):
        engine.handle_event(PositionUpdated(1 + i * 0.25, 130))
    assert len(engine.progress_calls) == 10
    _, current, total = engine.progress_calls[-1]
    assert (current, total) == ("0:03", "2:10")
    # Surface saw the duration push and nothing else inside the window
    assert len(surface.positions) == 1


def test_ended_is_terminal_until_next_load(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(299, 300))
    engine.handle_event(Ended())
    assert engine.session.state is PlaybackState.ENDED
    assert engine.session.position == 300
    assert surface.states[-1] == "paused"

    surface.clear()
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(3, 300))
    assert surface.calls == []
    assert not run(engine.play())

    engine.load(URL_B)
    assert engine.session.state is PlaybackState.LOADING


def test_metadata_set_once_per_load(engine, surface):
    meta = TrackMetadata.from_episode("Ep 1", "Show", "https://example.com/c.jpg")
    engine.load(URL_A, meta)
    assert [c for c in surface.calls if c[0] == "set_metadata"] == [("set_metadata", meta)]
    assert len(meta.artwork) == 4


def test_failing_surface_never_breaks_playback(transport, clock, settings):
    surface = RecordingSurface(failing={"set_metadata", "set_position_state",
                                        "set_playback_state"})
    progress = []
    engine = SyncEngine(transport, surface, clock=clock, settings=settings,
                        on_progress=lambda *a: progress.append(a))
    engine.load(URL_A, TrackMetadata(title="x"))
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(10, 300))
    assert engine.session.state is PlaybackState.PLAYING
    assert progress[-1][1] == "0:10"


def test_load_picks_up_transport_rate(engine, transport):
    transport.rate = 1.25
    engine.load(URL_A)
    assert engine.session.rate == 1.25


def test_independent_engines_do_not_share_state(clock, settings):
    one = SyncEngine(FakeTransport(), RecordingSurface(), clock=clock, settings=settings)
    two = SyncEngine(FakeTransport(), RecordingSurface(), clock=clock, settings=settings)
    one.load(URL_A)
    one.handle_event(Started())
    one.handle_event(PositionUpdated(50, 300))
    assert two.session.source_id is None
    assert two.session.position == 0.0


def test_close_drops_source_and_timers(engine, transport, surface, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(10, 300))
    engine.close()
    assert clock.pending == 0
    assert engine.session.source_id is None
    assert engine.status()["state"] == "idle"
    assert engine.router.seek_absolute(5) is None


def _playing_at(engine, clock, position=12.0, duration=600):
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(PositionUpdated(position, duration))
    clock.advance(2)


def test_play_rejected_after_started_leaves_surface_paused(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(DurationResolved(300))
    engine.handle_event(Started())
    transport.play_error = RuntimeError("decoder crashed")
    with pytest.raises(PlaybackError):
        run(engine.play())
    assert surface.states[-1] == "paused"
    assert surface.positions[-1]["duration"] == 300.0


def test_merged_seek_completion_keeps_later_seeks_visible(engine, transport, surface, clock):
    transport.auto_seek = False
    _playing_at(engine, clock)
    for target in (100, 105, 110):
        engine.router.seek_absolute(target)
    engine.handle_event(Seeked(110))
    clock.advance(0.1)
    assert engine.session.seeks_in_flight == 0
    assert surface.positions[-1]["position"] == 110

    # Seek made on the player itself
    engine.handle_event(Seeked(200.0))
    clock.advance(0.1)
    assert surface.positions[-1]["position"] == 200.0


def test_external_seek_reaches_surface(engine, transport, surface, clock):
    _playing_at(engine, clock)
    surface.clear()
    engine.handle_event(Seeked(321.0))
    assert surface.positions == []
    clock.advance(0.05)
    assert surface.positions == [{"duration": 600.0, "position": 321.0, "rate": 1.0}]


def test_toggle_pauses_then_plays(engine, transport, surface):
    engine.load(URL_A)
    engine.handle_event(Started())
    assert run(engine.toggle()) is False
    assert transport.calls[-1] == ("pause",)

    engine.handle_event(Paused())
    assert run(engine.toggle()) is True
    assert transport.calls[-1] == ("play",)


def test_toggle_without_source_does_nothing(engine, transport):
    assert run(engine.toggle()) is False
    assert transport.calls == []


def test_seek_percent(engine, transport, clock):
    engine.load(URL_A)
    engine.handle_event(Started())
    assert engine.seek_percent(50) is None
    assert transport.seeks() == []

    engine.handle_event(PositionUpdated(10, 200))
    assert engine.seek_percent(25) == 50.0
    assert engine.seek_percent(150) == 200.0
    assert engine.seek_percent(float("nan")) is None
    assert transport.seeks() == [50.0, 200.0]


def test_ended_callback(transport, surface, clock, settings):
    ended = []
    engine = SyncEngine(transport, surface, clock=clock, settings=settings,
                        on_ended=lambda: ended.append(engine.session.state))
    engine.load(URL_A)
    engine.handle_event(Started())
    engine.handle_event(Ended())
    assert ended == [PlaybackState.ENDED]
