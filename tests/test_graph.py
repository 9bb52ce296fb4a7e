import pytest

import conftest
import murmur.clock
import murmur.graph


def test_master_volume_is_sent_as_sysex (output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	"""Master volume uses the Universal SysEx master volume message, 14-bit."""

	master.volume.value = 0.5

	sysex = output.of_type("sysex")

	assert len(sysex) == 1
	assert list(sysex[0].data) == [0x7F, 0x7F, 0x04, 0x01, 0, 64]


def test_master_without_port_discards_messages () -> None:

	master = murmur.graph.MasterOutput(None)

	master.volume.value = 0.2

	assert master.volume.value == 0.2


def test_param_clamps_to_range () -> None:

	reverb = murmur.graph.Reverb(wet=0.5)

	reverb.wet.value = 2.0
	assert reverb.wet.value == 1.0

	reverb.wet.value = -1.0
	assert reverb.wet.value == 0.0


def test_voice_connect_sends_program_and_volume (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	voice = murmur.graph.PolyVoice(clock, channel=3, program=5, volume=0.0)
	voice.connect(master)

	programs = output.of_type("program_change")

	assert [(m.channel, m.program) for m in programs] == [(3, 5)]
	assert output.controls(murmur.graph.CC_VOLUME, channel=3) == [127]

	voice.volume.value = -6.0
	assert output.controls(murmur.graph.CC_VOLUME, channel=3) == [127, 64]


def test_invalid_channel (clock: murmur.clock.VirtualClock) -> None:

	with pytest.raises(ValueError):
		murmur.graph.PolyVoice(clock, channel=16)


def test_effects_announce_settings_to_new_channels (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	"""Each channel routed through an effect receives that effect's controllers."""

	reverb = murmur.graph.Reverb(wet=0.5).connect(master)
	brightness = murmur.graph.Filter(frequency=20000.0, q=0.0).connect(reverb)

	murmur.graph.PolyVoice(clock, channel=2).connect(brightness)
	murmur.graph.PolyVoice(clock, channel=4).connect(reverb)

	assert output.controls(murmur.graph.CC_REVERB_SEND, channel=2) == [64]
	assert output.controls(murmur.graph.CC_REVERB_SEND, channel=4) == [64]
	assert output.controls(murmur.graph.CC_BRIGHTNESS, channel=2) == [127]
	assert output.controls(murmur.graph.CC_RESONANCE, channel=2) == [0]
	assert output.controls(murmur.graph.CC_BRIGHTNESS, channel=4) == []

	reverb.wet.value = 1.0

	assert output.controls(murmur.graph.CC_REVERB_SEND, channel=2) == [64, 127]
	assert output.controls(murmur.graph.CC_REVERB_SEND, channel=4) == [64, 127]


def test_gain_maps_ceiling_to_full_scale (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	gain = murmur.graph.Gain(1.5).connect(master)
	murmur.graph.PolyVoice(clock, channel=0).connect(gain)

	gain.gain.value = 0.75

	assert output.controls(murmur.graph.CC_EXPRESSION, channel=0) == [127, 64]


def test_attack_release_timing (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	"""A delayed note sounds at its delay and ends ``duration`` later."""

	voice = murmur.graph.PolyVoice(clock, channel=0)
	voice.connect(master)

	voice.trigger_attack_release("C4", 1.0, delay=0.5)

	assert output.of_type("note_on") == []
	assert voice.pending == 2

	clock.advance(0.5)
	assert output.notes_on() == [60]
	assert output.of_type("note_on")[0].velocity == 89
	assert voice.sounding == {60: 1}

	clock.advance(1.0)
	assert [m.note for m in output.of_type("note_off")] == [60]
	assert voice.sounding == {}
	assert voice.pending == 0


def test_chord_without_delay_sounds_immediately (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	voice = murmur.graph.PolyVoice(clock, channel=1)
	voice.connect(master)

	voice.trigger_attack_release(["C4", "E4", "G4"], 2.0, velocity=1.0)

	assert output.notes_on(channel=1) == [60, 64, 67]
	assert {m.velocity for m in output.of_type("note_on")} == {127}


def test_release_all_ends_sounding_and_scheduled_notes (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	voice = murmur.graph.PolyVoice(clock, channel=0)
	voice.connect(master)

	voice.trigger_attack(["C4", "G4"])
	voice.trigger_attack_release("E4", 1.0, delay=2.0)

	voice.release_all()

	assert sorted(m.note for m in output.of_type("note_off")) == [60, 67]
	assert voice.pending == 0

	clock.advance(5.0)
	assert output.notes_on() == [60, 67]


def test_mono_voice_releases_previous_note (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	voice = murmur.graph.MonoVoice(clock, channel=0)
	voice.connect(master)

	voice.trigger_attack("C2")
	voice.trigger_attack("G2")

	assert [(m.type, m.note) for m in output.messages if m.type in ("note_on", "note_off")] == [
		("note_on", 36),
		("note_off", 36),
		("note_on", 43),
	]

	voice.trigger_release()

	assert voice.sounding == {}
	assert not hasattr(voice, "release_all")


def test_disposed_voice_is_silent (clock: murmur.clock.VirtualClock, output: conftest.FakeMidiOut, master: murmur.graph.MasterOutput) -> None:

	"""Dispose ends held notes; afterwards the voice sends nothing."""

	voice = murmur.graph.PolyVoice(clock, channel=0)
	voice.connect(master)

	voice.trigger_attack("A4")
	voice.dispose()

	assert [m.note for m in output.of_type("note_off")] == [69]
	assert voice.disposed

	count = len(output.messages)
	voice.trigger_attack("A4")
	voice.dispose()

	assert len(output.messages) == count


def test_lfo_drives_param (clock: murmur.clock.VirtualClock) -> None:

	sweep = murmur.graph.Filter(frequency=400.0)
	lfo = murmur.graph.LFO(clock, frequency=0.25, min_val=200.0, max_val=600.0).connect(sweep.frequency)

	lfo.start()
	assert lfo.running
	assert sweep.frequency.value == pytest.approx(400.0)

	clock.advance(1.0)
	assert sweep.frequency.value == pytest.approx(600.0)

	lfo.stop()
	assert not lfo.running

	clock.advance(2.0)
	assert sweep.frequency.value == pytest.approx(600.0)
	assert clock.pending == 0


def test_lfo_start_is_idempotent_and_dispose_is_final (clock: murmur.clock.VirtualClock) -> None:

	swell = murmur.graph.Gain(1.0)
	lfo = murmur.graph.LFO(clock, frequency=0.1, min_val=0.3, max_val=1.0).connect(swell.gain)

	lfo.start()
	lfo.start()
	assert clock.pending == 1

	lfo.dispose()
	lfo.start()

	assert not lfo.running
	assert lfo.target is None


def test_is_reverb () -> None:

	assert murmur.graph.is_reverb(murmur.graph.Reverb())
	assert not murmur.graph.is_reverb(murmur.graph.Delay())
	assert not murmur.graph.is_reverb(murmur.graph.Filter())
