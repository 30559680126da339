import argparse
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from prepfire.core.config import settings
from prepfire.db.session import SessionLocal, init_db
from prepfire.services.problem_service import load_server_data
from prepfire.services.statistics_service import rebuild_all_statistics

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync problems from server data into the database.")
    parser.add_argument("--path", default=settings.SERVER_DATA_PATH,
                        help=f"Server data directory (default: {settings.SERVER_DATA_PATH}).")
    parser.add_argument("--rebuild-stats", action="store_true",
                        help="Recompute problem and user statistics from judged submissions afterwards.")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        print(f"Problems: {load_server_data(db, args.path)}")
        if args.rebuild_stats:
            print(f"Statistics rebuilt: {rebuild_all_statistics(db)}")
    finally:
        db.close()
