# -*- coding: utf-8 -*-
"""# qosc

`Quantum simulators over Open Sound Control`

A UDP server that exposes pluggable quantum simulator backends through OSC
messages. Clients allocate a qubit register with `/<backend>/init`, then apply
gates, measure, query and reset it, one datagram per request and one reply per
request.

Backends:

- `gk`: stabilizer (Gottesman-Knill) simulation on stim's tableau simulator
- `steane`: logical qubits in the [[7,1,3]] Steane code, with optional
  physical bit-flip noise

Entry points:

- `qosc server --config gk` starts a server from an INI profile
- `qosc.server.OscClient` talks to a server from asyncio code
"""

from ._version import __version__
