"""
Murmur - endless generative ambient music for MIDI instruments.

Murmur never plays a loop.  Every few seconds it decides what to play
next: a slow chord on a pad, a chime high in the scale, a short melody
that wanders up and down from a seed note.  Each decision arms the next
one, so the music keeps unfolding until it is told to stop, and never
repeats itself.

How it fits together:

- **Melodic phrases.** ``MelodicGenerator`` picks a seed pitch from the
  current mood, random-walks a few steps through the scale and hands the
  phrase to an instrument (piano, harp, wind chimes, soft flute, ...).
  The melodic frequency (1-10) sets how long it rests between phrases.
  Up to three melody lines can play at once, each quieter, wetter and
  sparser than the one before.
- **Ambient beds.** ``AmbientScheduler`` runs an engine's layered
  streams: pads, chimes, bass lines, drones, each one a chain of
  randomised self-rescheduling callbacks.  Density (1-10) tightens or
  loosens the streams.
- **Environment layers.** Surf, a thunderstorm or a ticking grandfather
  clock can play under the music, switched on and off independently.
- **Clean lifecycles.** Every generator starts, stops and disposes the
  same way.  Stopping cancels every pending callback before it returns
  and lets notes ring out; disposing frees voices after a short grace
  window, and one failing voice never blocks the release of the rest.
- **Moods.** A mood is a key, a mode and a handful of seed pitches.
  Change it at any time and running streams pick up the new scale on
  their next cycle.
- **Pure MIDI.** Voices are channels on a MIDI port, effects are
  controller sends, LFOs write controller sweeps.  Point it at a
  hardware synth, a DAW or a General MIDI soft synth.
- **Live control.** An optional OSC server changes density, reverb,
  volume, mood, engine, instrument, melody lines and layers while it
  plays.

Minimal example:

	```python
	import asyncio
	import murmur

	async def main ():
		loop = asyncio.get_running_loop()
		_, port = murmur.midi_utils.select_output_device()
		destinations = murmur.manager.build_destinations(port)

		ambient = murmur.AmbientMusicManager(loop, destinations)
		ambient.set_engine("cosmic_drift")
		ambient.set_mood("dreamy")
		ambient.start()

		await asyncio.sleep(600)
		ambient.dispose()

	asyncio.run(main())
	```

Or from the command line::

	python -m murmur --engine underwater_palace --instrument harp --mood serene

Package-level exports: ``AmbientMusicManager``, ``MelodyManager``,
``EnvironmentManager``,
``AmbientScheduler``, ``MelodicGenerator``, ``TimerSet``, ``Lifecycle``,
``VirtualClock``, ``MOODS``.
"""

import murmur.ambient
import murmur.clock
import murmur.engines
import murmur.environments
import murmur.graph
import murmur.instruments
import murmur.lifecycle
import murmur.manager
import murmur.melodic
import murmur.midi_utils
import murmur.moods
import murmur.timers


AmbientMusicManager = murmur.manager.AmbientMusicManager
AmbientScheduler = murmur.ambient.AmbientScheduler
EnvironmentManager = murmur.manager.EnvironmentManager
Lifecycle = murmur.lifecycle.Lifecycle
MOODS = murmur.moods.MOODS
MelodicGenerator = murmur.melodic.MelodicGenerator
MelodyManager = murmur.manager.MelodyManager
TimerSet = murmur.timers.TimerSet
VirtualClock = murmur.clock.VirtualClock
