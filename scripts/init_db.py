#!/usr/bin/env python3
"""Create database tables and the subscription plan rows."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agendizo import create_app
from agendizo.billing import sync_plan_prices
from agendizo.extensions import db


def init_database():
    app = create_app()
    with app.app_context():
        db.create_all()
        sync_plan_prices()
        print("Database tables and subscription plans initialized")


if __name__ == "__main__":
    init_database()
