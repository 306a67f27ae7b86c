#!/usr/bin/env python3
"""Mark finished appointments as completed, once or on a fixed interval.

Usage: python scripts/auto_complete.py [--once]
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from agendizo import create_app
from agendizo.scheduling import complete_past_appointments, run_auto_complete


def main(argv):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    with app.app_context():
        if "--once" in argv:
            print(f"Completed {complete_past_appointments()} appointments")
        else:
            run_auto_complete()


if __name__ == "__main__":
    main(sys.argv[1:])
