import dataclasses
import random
import typing

import pytest

import conftest
import murmur.ambient
import murmur.clock
import murmur.environments
import murmur.graph
import murmur.instruments
import murmur.lifecycle
import murmur.manager
import murmur.melodic
import murmur.moods


@pytest.fixture
def ambient (clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> murmur.manager.AmbientMusicManager:

	"""An ambient manager with a seeded random source."""

	return murmur.manager.AmbientMusicManager(clock, destinations, rng=random.Random(4))


@pytest.fixture
def melody (clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> murmur.manager.MelodyManager:

	"""A melody manager with a seeded random source."""

	return murmur.manager.MelodyManager(clock, destinations, rng=random.Random(4), frequency=10)


class Generator:

	"""Stands in for a scheduler or melodic generator holding pool channels."""

	def __init__ (self) -> None:
		self.state = murmur.lifecycle.State.ACTIVE

	def finalize_now (self) -> None:
		self.state = murmur.lifecycle.State.FINALIZED


def test_build_destinations_routing (destinations: murmur.manager.Destinations) -> None:

	"""The global delay and filter feed the global reverb, which feeds the master."""

	assert destinations.global_reverb.destination is destinations.master_volume
	assert destinations.global_delay.destination is destinations.global_reverb
	assert destinations.global_filter.destination is destinations.global_reverb


class TestAmbientMusicManager:

	def test_start_without_engine (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		with pytest.raises(RuntimeError, match="No sound engine selected"):
			ambient.start()

	def test_set_engine_applies_the_mood (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		ambient.set_mood("dreamy")
		scheduler = ambient.set_engine("cosmic_drift")

		assert ambient.engine_key == "cosmic_drift"
		assert ambient.scheduler is scheduler
		assert scheduler.scale == murmur.moods.get_mood("dreamy").scale()
		assert not scheduler.active

	def test_switching_engines_while_playing (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock) -> None:

		"""The old engine winds down on its own channels while the new one plays."""

		old = ambient.set_engine("standard")
		ambient.start()
		clock.advance(10.0)

		new = ambient.set_engine("dark_matter")

		assert old.state is murmur.lifecycle.State.QUIESCING
		assert len(old.timers) == 0
		assert new.active
		assert new.base_channel != old.base_channel

		clock.advance(murmur.ambient.GRACE_WINDOW)

		assert old.state is murmur.lifecycle.State.FINALIZED
		assert new.active

	def test_unknown_engine_keeps_the_current_one (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		current = ambient.set_engine("standard")
		ambient.start()

		with pytest.raises(KeyError):
			ambient.set_engine("warp_core")

		assert ambient.scheduler is current
		assert current.active

	def test_set_mood (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		moods: typing.List[str] = []
		ambient.on_mood = moods.append

		scheduler = ambient.set_engine("standard")
		ambient.set_mood("dark")

		assert ambient.mood == "dark"
		assert scheduler.scale == murmur.moods.get_mood("dark").scale()
		assert moods == ["dark"]

		with pytest.raises(KeyError):
			ambient.set_mood("furious")

		assert ambient.mood == "dark"

	def test_settings_carry_over_to_the_next_engine (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		first = ambient.set_engine("standard")
		ambient.update_config(density=8, reverb_amount=0.2)

		assert first.config.density == 8
		assert first.config.reverb_amount == 0.2

		second = ambient.set_engine("neon_nocturne")

		assert second.config.density == 8
		assert second.config.reverb_amount == 0.2
		assert second.config is not first.config

	def test_stop_and_resume (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock) -> None:

		scheduler = ambient.set_engine("standard")
		ambient.start()
		ambient.stop()

		assert not ambient.playing
		assert scheduler.state is murmur.lifecycle.State.QUIESCING

		ambient.start()

		assert scheduler.active
		assert ambient.playing

	def test_dispose (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock) -> None:

		scheduler = ambient.set_engine("aurora_field")
		ambient.start()
		clock.advance(30.0)

		ambient.dispose()

		assert scheduler.state is murmur.lifecycle.State.FINALIZED
		assert clock.pending == 0

	def test_random_mood_cycle (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock) -> None:

		moods: typing.List[str] = []
		ambient.on_mood = moods.append

		ambient.set_engine("standard")
		ambient.start()
		ambient.start_random_mood_cycle(1.0)

		clock.advance(59.0)
		assert moods == []

		clock.advance(1.0)
		assert len(moods) == 1

		clock.advance(120.0)
		assert len(moods) == 3
		assert all(mood in murmur.moods.MOODS for mood in moods)

		ambient.stop()
		clock.advance(600.0)
		assert len(moods) == 3

	def test_catalogues (self, ambient: murmur.manager.AmbientMusicManager) -> None:

		engines = ambient.available_engines()

		assert len(engines) == 12
		assert engines[0]["key"] == "atmospheric_temple"
		assert ambient.available_moods() == sorted(murmur.moods.MOODS)


class TestMelodyManager:

	def test_start_plays_the_selected_instrument (self, melody: murmur.manager.MelodyManager) -> None:

		mood = murmur.moods.get_mood("calm")
		generator = melody.set_instrument("harp")

		assert not generator.active

		melody.start(mood.scale(), mood.pattern())

		assert generator.active
		assert generator.pattern == ["C4", "E4", "A4"]

	def test_switching_instruments_while_playing (self, melody: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock) -> None:

		mood = murmur.moods.get_mood("calm")

		old = melody.set_instrument("piano")
		melody.start(mood.scale(), mood.pattern())
		clock.advance(20.0)

		new = melody.set_instrument("marimba")

		assert old.state is murmur.lifecycle.State.QUIESCING
		assert new.active
		assert new.channel != old.channel

		clock.advance(murmur.melodic.GRACE_WINDOW)
		assert old.state is murmur.lifecycle.State.FINALIZED

	def test_disable_and_enable (self, melody: murmur.manager.MelodyManager) -> None:

		mood = murmur.moods.get_mood("calm")

		generator = melody.set_instrument("piano")
		melody.start(mood.scale(), mood.pattern())

		melody.set_enabled(False)
		assert not generator.active

		replacement = melody.set_instrument("harp")
		assert not replacement.active

		melody.set_enabled(True)
		assert replacement.active

	def test_updates_reach_the_generator (self, melody: murmur.manager.MelodyManager) -> None:

		generator = melody.set_instrument("piano")

		melody.set_scale_and_pattern(["D4", "F4", "A4"], ["F4"])
		melody.set_frequency(2)
		melody.update_reverb_amount(0.9)
		melody.set_volume(-12.0)

		assert generator.scale == ["D4", "F4", "A4"]
		assert generator.pattern == ["F4"]
		assert generator.frequency == 2
		assert generator.config.reverb_amount == 0.9
		assert generator.config.volume == -12.0

		replacement = melody.set_instrument("harp")

		assert replacement.frequency == 2
		assert replacement.config.reverb_amount == 0.9
		assert replacement.config.volume == -12.0

	def test_random_instrument_never_repeats (self, melody: murmur.manager.MelodyManager) -> None:

		previous = melody.instrument_key

		for _ in range(30):
			key = melody.change_to_random_instrument()
			assert key != previous
			assert melody.instrument_key == key
			previous = key

	def test_random_instrument_with_a_single_choice (self, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> None:

		registry = murmur.instruments.InstrumentRegistry()
		registry.register("only", lambda: murmur.instruments.Instrument("Only", program=0, note_duration=1.0, spacing=1.0))

		melody = murmur.manager.MelodyManager(clock, destinations, registry=registry)
		melody.set_instrument("only")

		assert melody.change_to_random_instrument() == "only"

	def test_random_cycle (self, melody: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock) -> None:

		mood = murmur.moods.get_mood("calm")

		melody.set_instrument("piano")
		melody.start(mood.scale(), mood.pattern())
		melody.start_random_cycle(1.0)

		clock.advance(60.0)
		assert melody.instrument_key != "piano"
		assert melody.generator.active

		melody.stop()
		key = melody.instrument_key
		clock.advance(600.0)
		assert melody.instrument_key == key

	def test_dispose (self, melody: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock) -> None:

		mood = murmur.moods.get_mood("calm")

		generator = melody.set_instrument("wind_chimes")
		melody.start(mood.scale(), mood.pattern())
		clock.advance(30.0)

		melody.dispose()
		clock.advance(murmur.melodic.GRACE_WINDOW)

		assert generator.state is murmur.lifecycle.State.FINALIZED
		assert clock.pending == 0


def test_melody_follows_the_mood (ambient: murmur.manager.AmbientMusicManager, melody: murmur.manager.MelodyManager) -> None:

	def follow (key: str) -> None:
		mood = murmur.moods.get_mood(key)
		melody.set_scale_and_pattern(mood.scale(), mood.pattern())

	ambient.on_mood = follow
	generator = melody.set_instrument("harp")

	ambient.set_mood("serene")

	assert generator.scale == murmur.moods.get_mood("serene").scale()
	assert generator.pattern == murmur.moods.get_mood("serene").pattern()


class TestChannelPool:

	def test_claims_skip_the_drum_channel (self) -> None:

		pool = murmur.manager.ChannelPool()

		assert pool.claim(8) == [0, 1, 2, 3, 4, 5, 6, 7]
		assert pool.claim(7) == [8, 10, 11, 12, 13, 14, 15]
		assert pool.free() == []

		with pytest.raises(RuntimeError, match="No free MIDI channels"):
			pool.claim(1)

	def test_claim_larger_than_the_pool (self) -> None:

		with pytest.raises(ValueError):
			murmur.manager.ChannelPool([0, 1]).claim(3)

	def test_bind_needs_a_claim (self) -> None:

		pool = murmur.manager.ChannelPool([0, 1, 2])

		with pytest.raises(ValueError, match="never claimed"):
			pool.bind([0], Generator())

	def test_retired_channels_return_after_finalizing (self) -> None:

		pool = murmur.manager.ChannelPool([0, 1, 2, 3])
		generator = Generator()

		channels = pool.claim(2)
		pool.bind(channels, generator)

		generator.state = murmur.lifecycle.State.QUIESCING
		pool.retire(generator)

		assert pool.free() == [2, 3]

		generator.state = murmur.lifecycle.State.FINALIZED

		assert pool.free() == [0, 1, 2, 3]

	def test_exhausted_pool_finalizes_the_oldest_retired (self) -> None:

		pool = murmur.manager.ChannelPool([0, 1, 2, 3])
		first, second = Generator(), Generator()

		for generator in (first, second):
			pool.bind(pool.claim(2), generator)
			generator.state = murmur.lifecycle.State.QUIESCING
			pool.retire(generator)

		assert pool.claim(2) == [0, 1]
		assert first.state is murmur.lifecycle.State.FINALIZED
		assert second.state is murmur.lifecycle.State.QUIESCING


class TestEngineChannels:

	def test_quick_switches_never_share_channels (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> None:

		"""Three engines in one grace window each play on their own channels."""

		first = ambient.set_engine("standard")
		ambient.start()
		clock.advance(10.0)

		second = ambient.set_engine("dark_matter")
		clock.advance(0.2)
		third = ambient.set_engine("cosmic_drift")

		assert first.state is murmur.lifecycle.State.QUIESCING
		assert second.state is murmur.lifecycle.State.QUIESCING
		assert third.active

		held = [set(s.channels) for s in (first, second, third)]

		assert not held[0] & held[1]
		assert not held[0] & held[2]
		assert not held[1] & held[2]
		assert all(9 not in channels for channels in held)

		clock.advance(murmur.ambient.GRACE_WINDOW)

		assert set(destinations.channels.free()) == set(murmur.manager.POOL_CHANNELS) - held[2]

	def test_small_pool_finalizes_the_oldest_early (self, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> None:

		narrow = dataclasses.replace(destinations, channels=murmur.manager.ChannelPool(range(1, 9)))
		ambient = murmur.manager.AmbientMusicManager(clock, narrow, rng=random.Random(4))

		first = ambient.set_engine("standard")
		ambient.start()
		second = ambient.set_engine("standard")
		third = ambient.set_engine("standard")

		assert first.state is murmur.lifecycle.State.FINALIZED
		assert second.state is murmur.lifecycle.State.QUIESCING
		assert third.channels == first.channels
		assert third.active

	def test_stopped_pad_leaves_the_new_engine_alone (self, ambient: murmur.manager.AmbientMusicManager, clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut) -> None:

		"""After a switch only the new engine writes filter sweeps."""

		old = ambient.set_engine("underwater_palace")
		ambient.start()
		clock.advance(5.0)

		new = ambient.set_engine("standard")
		output.messages.clear()
		clock.advance(0.9)

		swept = {m.channel for m in output.of_type("control_change") if m.control == murmur.graph.CC_BRIGHTNESS}

		assert not swept & set(old.channels)
		assert new.active

	def test_dispose_returns_every_channel (self, ambient: murmur.manager.AmbientMusicManager, destinations: murmur.manager.Destinations) -> None:

		ambient.set_engine("standard")
		ambient.start()
		ambient.dispose()

		assert destinations.channels.free() == list(murmur.manager.POOL_CHANNELS)


class TestMelodySlots:

	@pytest.fixture
	def trio (self, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> murmur.manager.MelodyManager:

		"""A three-slot melody manager playing the harp in a calm mood."""

		melody = murmur.manager.MelodyManager(clock, destinations, rng=random.Random(4), frequency=10, slots=3)
		melody.set_instrument("harp")

		mood = murmur.moods.get_mood("calm")
		melody.start(mood.scale(), mood.pattern())

		return melody

	def test_each_slot_plays_its_own_line (self, trio: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut) -> None:

		generators = trio.generators
		channels = [g.channel for g in generators]

		assert len(generators) == 3
		assert len(set(channels)) == 3
		assert all(g.active for g in generators)
		assert [len(g.lifecycle.timers) for g in generators] == [1, 1, 1]

		clock.advance(30.0)

		for channel in channels:
			assert output.notes_on(channel=channel)

	def test_one_stop_cancels_every_line (self, trio: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut) -> None:

		clock.advance(30.0)
		trio.stop()

		assert not any(g.active for g in trio.generators)
		assert [len(g.lifecycle.timers) for g in trio.generators] == [0, 0, 0]
		assert clock.pending == 0

		played = len(output.of_type("note_on"))
		clock.advance(600.0)

		assert len(output.of_type("note_on")) == played

	def test_later_slots_are_quieter_wetter_and_sparser (self, trio: murmur.manager.MelodyManager) -> None:

		generators = trio.generators

		assert [g.config.volume for g in generators] == [-5.0, -7.0, -9.0]
		assert [g.config.reverb_amount for g in generators] == pytest.approx([0.5, 0.6, 0.7])
		assert [g.frequency for g in generators] == [10, 9, 8]
		assert [g.rest for g in generators] == [0.0, 2.0, 4.0]

	def test_settings_keep_the_slot_offsets (self, trio: murmur.manager.MelodyManager) -> None:

		trio.set_volume(-10.0)
		trio.update_reverb_amount(0.95)
		trio.set_frequency(1)

		generators = trio.generators

		assert [g.config.volume for g in generators] == [-10.0, -12.0, -14.0]
		assert [g.config.reverb_amount for g in generators] == pytest.approx([0.95, 1.0, 1.0])
		assert [g.frequency for g in generators] == [1, 1, 1]

		trio.set_frequency(None)

		assert [g.frequency for g in generators] == [None, 4, 3]

	def test_slot_count_is_clamped (self, melody: murmur.manager.MelodyManager) -> None:

		assert melody.set_slot_count(0) == 1
		assert melody.set_slot_count(7) == murmur.manager.MAX_SLOTS
		assert melody.slot_count == murmur.manager.MAX_SLOTS

	def test_growing_keeps_scale_instrument_and_play_state (self, melody: murmur.manager.MelodyManager) -> None:

		mood = murmur.moods.get_mood("dreamy")

		first = melody.set_instrument("piano")
		melody.start(mood.scale(), mood.pattern())

		melody.set_slot_count(3)

		assert melody.generator is first
		assert [slot.instrument_key for slot in melody.slots] == ["piano", "piano", "piano"]
		assert all(g.active for g in melody.generators)
		assert all(g.scale == mood.scale() for g in melody.generators)
		assert all(g.pattern == mood.pattern() for g in melody.generators)

	def test_growing_while_disabled_stays_silent (self, melody: murmur.manager.MelodyManager) -> None:

		mood = murmur.moods.get_mood("calm")

		melody.set_instrument("piano")
		melody.start(mood.scale(), mood.pattern())
		melody.set_enabled(False)

		melody.set_slot_count(2)

		assert not any(g.active for g in melody.generators)

		melody.set_enabled(True)

		assert all(g.active for g in melody.generators)

	def test_shrinking_winds_down_the_extra_lines (self, trio: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock) -> None:

		first, second, third = trio.generators

		trio.set_slot_count(1)

		assert trio.generators == [first]
		assert first.active
		assert second.state is murmur.lifecycle.State.QUIESCING
		assert third.state is murmur.lifecycle.State.QUIESCING

		clock.advance(murmur.melodic.GRACE_WINDOW)

		assert second.state is murmur.lifecycle.State.FINALIZED
		assert third.state is murmur.lifecycle.State.FINALIZED

	def test_set_slot_instrument (self, trio: murmur.manager.MelodyManager) -> None:

		first = trio.generator
		old = trio.slots[1].generator

		new = trio.set_slot_instrument(1, "vintage_celesta")

		assert trio.slots[1].instrument_key == "vintage_celesta"
		assert trio.slots[1].generator is new
		assert trio.generator is first and trio.instrument_key == "harp"
		assert old.state is murmur.lifecycle.State.QUIESCING
		assert new.active
		assert new.channel not in {first.channel, old.channel}
		assert new.config.volume == -7.0

	def test_set_slot_instrument_rejects_bad_input (self, trio: murmur.manager.MelodyManager) -> None:

		current = trio.slots[2].generator

		with pytest.raises(IndexError):
			trio.set_slot_instrument(3, "piano")

		with pytest.raises(KeyError):
			trio.set_slot_instrument(2, "theremin")

		with pytest.raises(KeyError):
			trio.set_instrument("theremin")

		assert trio.slots[2].generator is current
		assert current.active

	def test_randomize_slot_instruments (self, trio: murmur.manager.MelodyManager) -> None:

		changed = trio.randomize_slot_instruments()

		assert sorted(changed) == [0, 1, 2]
		assert "harp" not in changed.values()
		assert [slot.instrument_key for slot in trio.slots] == [changed[0], changed[1], changed[2]]
		assert all(g.active for g in trio.generators)

		before = [slot.instrument_key for slot in trio.slots]
		changed = trio.randomize_slot_instruments(1)
		after = [slot.instrument_key for slot in trio.slots]

		assert len(changed) == 1
		assert sum(a != b for a, b in zip(before, after)) == 1

	def test_random_cycle_changes_some_slots (self, trio: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock) -> None:

		trio.start_random_cycle(1.0)
		clock.advance(60.0)

		assert any(slot.instrument_key != "harp" for slot in trio.slots)
		assert all(g.active for g in trio.generators)

	def test_dispose_frees_every_slot (self, trio: murmur.manager.MelodyManager, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> None:

		generators = trio.generators

		trio.dispose()
		clock.advance(murmur.melodic.GRACE_WINDOW)

		assert all(g.state is murmur.lifecycle.State.FINALIZED for g in generators)
		assert clock.pending == 0
		assert destinations.channels.free() == list(murmur.manager.POOL_CHANNELS)


class TestEnvironmentManager:

	@pytest.fixture
	def layers (self, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> murmur.manager.EnvironmentManager:
		return murmur.manager.EnvironmentManager(clock, destinations, rng=random.Random(4))

	def test_layers_play_side_by_side (self, layers: murmur.manager.EnvironmentManager) -> None:

		storm = layers.enable("thunderstorm")
		ticking = layers.enable("grandfather_clock")

		assert layers.active_layers == ["grandfather_clock", "thunderstorm"]
		assert storm.active and ticking.active
		assert len(storm.channels) == 2
		assert not set(storm.channels) & set(ticking.channels)
		assert layers.enable("thunderstorm") is storm

	def test_disable_lets_the_layer_ring_out (self, layers: murmur.manager.EnvironmentManager, clock: murmur.clock.VirtualClock, destinations: murmur.manager.Destinations) -> None:

		waves = layers.enable("ocean_waves")
		clock.advance(20.0)

		layers.disable("ocean_waves")

		assert layers.active_layers == []
		assert waves.state is murmur.lifecycle.State.QUIESCING
		assert len(waves.timers) == 0

		clock.advance(murmur.ambient.GRACE_WINDOW)

		assert waves.state is murmur.lifecycle.State.FINALIZED
		assert destinations.channels.free() == list(murmur.manager.POOL_CHANNELS)

		layers.disable("ocean_waves")

	def test_set_enabled (self, layers: murmur.manager.EnvironmentManager) -> None:

		layers.set_enabled("ocean_waves", True)
		assert layers.active_layers == ["ocean_waves"]

		layers.set_enabled("ocean_waves", False)
		assert layers.active_layers == []

		with pytest.raises(KeyError, match="volcano"):
			layers.set_enabled("volcano", True)

	def test_stop_and_dispose (self, layers: murmur.manager.EnvironmentManager, clock: murmur.clock.VirtualClock) -> None:

		started = [layers.enable(key) for key in murmur.environments.default_registry().available()]
		clock.advance(30.0)

		layers.stop()

		assert layers.active_layers == []
		assert all(s.state is murmur.lifecycle.State.QUIESCING for s in started)

		layers.enable("thunderstorm")
		layers.dispose()

		clock.advance(murmur.ambient.GRACE_WINDOW)

		assert all(s.state is murmur.lifecycle.State.FINALIZED for s in started)
		assert clock.pending == 0

	def test_catalogue (self, layers: murmur.manager.EnvironmentManager) -> None:

		assert [info["key"] for info in layers.available_layers()] == ["grandfather_clock", "ocean_waves", "thunderstorm"]
