"""Run the ONVIF tools with ``python -m onvifgate.onvif``."""

from __future__ import annotations

from onvifgate.onvif.cli import main

if __name__ == "__main__":
    main()
