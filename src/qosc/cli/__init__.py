"""
Command-line interface for qosc.

Starting, listing and killing servers, listing server profiles, and sending
single OSC messages for quick checks. Built on Click.

Examples
--------
Serving the Steane backend from its package profile:
```bash
$ qosc server -c steane
```

Poking a running server:
```bash
$ qosc send /gk/init 3
/gk/init/reply 'ok'
```

CLI Tree
--------

```
$ qosc --tree
cli
└── configs
└── kill
└── list
└── send
└── server
```
"""

from .base import cli, tree_option

__all__ = ["cli", "tree_option"]
