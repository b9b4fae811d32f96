from __future__ import annotations

import time

from scinstrument import EngineContext, EngineSettings, InstrumentConfig, InstrumentSession

SCALE = ("c", "d", "e", "f", "g", "a", "b")
OCTAVE = 4
NOTE_MS = 300
GAP_SECONDS = 0.35


def main() -> None:
    context = EngineContext.from_settings(EngineSettings.from_env())
    lead = InstrumentSession(context, config=InstrumentConfig(source="triangle", release=120, reverb=25))
    pad = InstrumentSession(context, config=InstrumentConfig(source="saw", attack=200, reverb=60))

    try:
        pad.play(["c", OCTAVE - 1, NOTE_MS * len(SCALE), 30])
        for note in SCALE:
            lead.play([note, OCTAVE, NOTE_MS, 70])
            time.sleep(GAP_SECONDS)
        lead.play([523.251, NOTE_MS * 2])
        time.sleep(1.0)
        lead.on_stop()
    finally:
        context.server.terminate()


if __name__ == "__main__":
    main()
