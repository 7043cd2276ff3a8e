import argparse
import logging
import os
import shutil

from algorithms import WeightConverter
from config import DEFAULT_DB_PATH, DEFAULT_YAML_PATH
from db import Database, SettingsRepository
import migrate
from seed_sample_data import seed
from stats_service import StatisticsService

LOGGER = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    db = Database(db_path)
    try:
        db.checkpoint()
    finally:
        db.close()
    shutil.copy(db_path, backup_path)
    LOGGER.info("backed up %s to %s", db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    if not os.path.exists(backup_path):
        raise FileNotFoundError(backup_path)
    for suffix in ("-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)
    shutil.copy(backup_path, db_path)
    LOGGER.info("restored %s from %s", db_path, backup_path)


def print_stats(db_path: str) -> None:
    db = Database(db_path)
    try:
        stats = StatisticsService(db)
        overall = stats.overall_stats()
        print(f"Total sessions: {overall.total_sessions}")
        print(
            f"Last 7 days: {overall.last7.sessions_count} sessions, "
            f"{overall.last7.sets_count} sets, {overall.last7.total_volume:.1f} volume"
        )
        for t in stats.per_template_stats():
            print(f"  {t.name}: {t.sessions_count} sessions, {t.total_sets} sets")
    finally:
        db.close()


def print_streak(db_path: str) -> None:
    db = Database(db_path)
    try:
        print(f"Current streak: {StatisticsService(db).current_streak()} days")
    finally:
        db.close()


def _configure_logging(verbose: bool, db_path: str, yaml_path: str) -> None:
    level = "DEBUG" if verbose else "WARNING"
    if not verbose and os.path.exists(yaml_path):
        db = Database(db_path)
        try:
            level = SettingsRepository(db, yaml_path).get_text("log_level", level)
        finally:
            db.close()
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--db", default=DEFAULT_DB_PATH)
    parser.add_argument("--yaml", default=DEFAULT_YAML_PATH)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("migrate")
    sub.add_parser("seed")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    sub.add_parser("stats")
    sub.add_parser("streak")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    plates = sub.add_parser("plates")
    plates.add_argument("--weight", type=float, required=True)
    plates.add_argument("--unit", choices=["kg", "lb"], default="kg")

    args = parser.parse_args()
    try:
        _configure_logging(args.verbose, args.db, args.yaml)
        _run(args)
    except (ValueError, OSError) as e:
        parser.exit(1, f"error: {e}\n")


def _run(args: argparse.Namespace) -> None:
    if args.cmd == "migrate":
        print(f"Schema version {migrate.migrate(args.db)}")
    elif args.cmd == "seed":
        seed(args.db, args.yaml)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "stats":
        print_stats(args.db)
    elif args.cmd == "streak":
        print_streak(args.db)
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "plates":
        load = WeightConverter.plates_per_side(args.weight, args.unit)
        print(f"Bar: {load['bar']} {args.unit}")
        for plate, count in load["plates"]:
            print(f"  {count} x {plate} {args.unit} per side")
        if load["remainder"]:
            print(f"  {load['remainder']} {args.unit} per side cannot be loaded")


if __name__ == "__main__":
    main()
