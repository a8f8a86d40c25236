#!/usr/bin/env python3
import os
import sys
from gamerelay import create_app, ensure_root, configure_logging, BIND, PORT, GAMERELAY_HOME

def _resolve_home() -> str:
    if len(sys.argv) >= 2:
        return os.path.abspath(sys.argv[1])
    return os.path.abspath(GAMERELAY_HOME or os.getcwd())

if __name__ == "__main__":
    home = ensure_root(_resolve_home())
    app = create_app(str(home))
    configure_logging(home, app.extensions["gamerelay"].config.verbose_logging)
    app.run(host=BIND, port=PORT, debug=False)
